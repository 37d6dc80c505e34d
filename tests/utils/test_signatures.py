"""
Unit tests for webhook signature verification.
"""
import hashlib
import hmac
import unittest

from sitepress.services.generation.errors import SignatureVerificationError
from sitepress.utils.signatures import (
    sign_payment_payload,
    verify_payment_signature,
    verify_repository_signature,
)

SECRET = "whsec_test_secret_0123456789"
BODY = b'{"type":"checkout.session.completed"}'
NOW = 1_700_000_000


class TestPaymentSignature(unittest.TestCase):
    def test_valid_signature_returns_timestamp(self):
        header = sign_payment_payload(SECRET, BODY, NOW)
        self.assertEqual(verify_payment_signature(BODY, header, SECRET, 300, now=NOW + 10), NOW)

    def test_any_matching_v1_is_accepted(self):
        good = sign_payment_payload(SECRET, BODY, NOW).split(",")[1]
        header = f"t={NOW},v1={'0' * 64},{good}"
        verify_payment_signature(BODY, header, SECRET, 300, now=NOW)

    def test_tampered_body(self):
        header = sign_payment_payload(SECRET, BODY, NOW)
        with self.assertRaises(SignatureVerificationError):
            verify_payment_signature(BODY + b" ", header, SECRET, 300, now=NOW)

    def test_wrong_secret(self):
        header = sign_payment_payload("whsec_other_secret_000000", BODY, NOW)
        with self.assertRaises(SignatureVerificationError):
            verify_payment_signature(BODY, header, SECRET, 300, now=NOW)

    def test_outside_tolerance(self):
        header = sign_payment_payload(SECRET, BODY, NOW)
        with self.assertRaises(SignatureVerificationError):
            verify_payment_signature(BODY, header, SECRET, 300, now=NOW + 301)

    def test_malformed_headers(self):
        for header in ("", "garbage", f"t={NOW}", "v1=abc", "t=abc,v1=abc"):
            with self.subTest(header=header):
                with self.assertRaises(SignatureVerificationError):
                    verify_payment_signature(BODY, header, SECRET, 300, now=NOW)


class TestRepositorySignature(unittest.TestCase):
    def _header(self, secret="gh_test_secret", body=BODY):
        return "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()

    def test_valid(self):
        verify_repository_signature(BODY, self._header(), "gh_test_secret")

    def test_mismatch(self):
        with self.assertRaises(SignatureVerificationError):
            verify_repository_signature(BODY, self._header(secret="other"), "gh_test_secret")

    def test_wrong_scheme(self):
        with self.assertRaises(SignatureVerificationError):
            verify_repository_signature(BODY, self._header().replace("sha256", "sha1"), "gh_test_secret")
