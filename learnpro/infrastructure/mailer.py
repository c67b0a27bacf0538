"""Transactional email through the Resend HTTP API."""

import requests
import structlog

from ..application.errors import UpstreamError
from ..config import settings
from .metrics import emails_sent_total
from .templating import render

logger = structlog.get_logger(__name__)


class ResendMailer:
    def __init__(self, api_key: str | None = None, sender: str | None = None,
                 api_url: str | None = None, timeout: int | None = None):
        self.api_key = settings.RESEND_API_KEY if api_key is None else api_key
        self.sender = sender or settings.EMAIL_FROM
        self.api_url = api_url or settings.RESEND_API_URL
        self.timeout = timeout or settings.EMAIL_TIMEOUT

    def send(self, to: str, subject: str, html: str) -> str | None:
        """Send one email and return the provider message id."""
        if not self.api_key:
            emails_sent_total.labels(status="failed").inc()
            raise UpstreamError("Email provider is not configured")
        try:
            response = requests.post(
                self.api_url,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json={"from": self.sender, "to": [to], "subject": subject, "html": html},
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout:
            emails_sent_total.labels(status="failed").inc()
            raise UpstreamError("Email provider timed out")
        except requests.exceptions.RequestException as exc:
            emails_sent_total.labels(status="failed").inc()
            raise UpstreamError(f"Email provider unreachable: {exc}")

        if response.status_code >= 400:
            emails_sent_total.labels(status="failed").inc()
            logger.warning("email_rejected", to=to, status_code=response.status_code, body=response.text[:200])
            raise UpstreamError(f"Email provider rejected the message ({response.status_code})")

        emails_sent_total.labels(status="sent").inc()
        try:
            message_id = response.json().get("id")
        except ValueError:
            logger.warning("email_response_unreadable", to=to, status_code=response.status_code)
            message_id = None
        logger.info("email_sent", to=to, subject=subject, message_id=message_id)
        return message_id

    def send_reminder(self, to: str, full_name: str | None, title: str, message: str,
                      course_id: int | None = None, course_title: str | None = None) -> str | None:
        html = render(
            "email_reminder.html",
            title=title,
            full_name=full_name or "Student",
            message=message,
            course_title=course_title,
            course_url=f"{settings.APP_URL}/courses/{course_id}" if course_id else None,
        )
        return self.send(to, title, html)

    def send_notification(self, to: str, full_name: str | None, title: str, message: str,
                          action_url: str | None = None) -> str | None:
        html = render(
            "email_notification.html",
            title=title,
            full_name=full_name or "Student",
            message=message,
            action_url=f"{settings.APP_URL}{action_url}" if action_url else None,
        )
        return self.send(to, title, html)


def get_mailer() -> ResendMailer:
    return ResendMailer()
