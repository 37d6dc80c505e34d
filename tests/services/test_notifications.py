"""NotificationService against a mocked SES client."""
from unittest.mock import MagicMock

from sitepress.services.notifications.service import NotificationService, editor_link


def _service():
    ses = MagicMock()
    ses.send_email.return_value = {"MessageId": "msg-1"}
    return NotificationService(client=ses), ses


def test_site_published_email():
    service, ses = _service()

    assert service.send_site_published("owner@example.com", "bakery") == "msg-1"

    kwargs = ses.send_email.call_args.kwargs
    assert kwargs["Destination"] == {"ToAddresses": ["owner@example.com"]}
    body = kwargs["Message"]["Body"]["Text"]["Data"]
    assert "https://bakery.e-info.click" in body
    assert editor_link("bakery") in body


def test_confirmation_code_email():
    service, ses = _service()
    service.send_confirmation_code("owner@example.com", "bakery", "123456")
    message = ses.send_email.call_args.kwargs["Message"]
    assert "bakery" in message["Subject"]["Data"]
    assert "123456" in message["Body"]["Text"]["Data"]
    assert "5 minutes" in message["Body"]["Text"]["Data"]
