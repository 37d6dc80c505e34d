"""
Outbound email via SES (plain text only).
"""
import logging

import boto3

from sitepress.core.config import settings
from sitepress.services.publishing.service import site_url

logger = logging.getLogger(__name__)


def editor_link(project_name: str) -> str:
    return f"{settings.editor_url.rstrip('/')}/?project={project_name}"


def published_site_body(project_name: str) -> str:
    return (
        "Your website has been published!\n\n"
        f"View your site: {site_url(project_name)}\n"
        f"Edit your site: {editor_link(project_name)}\n\n"
        "Changes may take a minute to appear.\n"
    )


def confirmation_code_body(project_name: str, code: str, ttl_seconds: int) -> str:
    return (
        f"Your confirmation code for {project_name} is: {code}\n\n"
        f"The code expires in {ttl_seconds // 60} minutes.\n"
        "If you did not request this code, you can ignore this email.\n"
    )


class NotificationService:
    def __init__(self, client=None) -> None:
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client("ses", region_name=settings.ses_region)
        return self._client

    def _send(self, to: str, subject: str, body: str) -> str:
        response = self.client.send_email(
            Source=settings.from_email,
            Destination={"ToAddresses": [to]},
            Message={
                "Subject": {"Data": subject, "Charset": "UTF-8"},
                "Body": {"Text": {"Data": body, "Charset": "UTF-8"}},
            },
        )
        return response["MessageId"]

    def send_site_published(self, email: str, project_name: str) -> str:
        message_id = self._send(email, "Your website is live", published_site_body(project_name))
        logger.info("site_published_email_sent", extra={"project_name": project_name})
        return message_id

    def send_confirmation_code(self, email: str, project_name: str, code: str) -> str:
        message_id = self._send(
            email,
            f"Confirmation code for {project_name}",
            confirmation_code_body(project_name, code, settings.confirmation_code_ttl),
        )
        logger.info("confirmation_code_email_sent", extra={"project_name": project_name})
        return message_id
