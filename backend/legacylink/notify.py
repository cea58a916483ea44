import os
import smtplib
from email.message import EmailMessage

from celery.utils.log import get_task_logger

from .services.errors import NotificationDeliveryError

_logger = get_task_logger(__name__)

EMAIL_OUTBOX: list[tuple[str, str, str]] = []
SMS_OUTBOX: list[tuple[str, str]] = []

MESSAGE_TEMPLATES: dict[str, tuple[str, str]] = {
    "verification_request": (
        "Please confirm your role as a trustee",
        "{owner} has named you as a trustee. Use code {code} to confirm or decline.",
    ),
    "release_notice": (
        "Information has been shared with you",
        "{owner} designated you as a trustee. Items they set aside for you may now be available.",
    ),
}


def send_email(to_email: str, subject: str, message: str):
    if os.getenv("TESTING") == "1":
        EMAIL_OUTBOX.append((to_email, subject, message))
        return
    server = os.getenv("SMTP_SERVER")
    if not server:
        return
    from_addr = os.getenv("EMAIL_FROM", "noreply@example.com")
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = from_addr
    msg["To"] = to_email
    msg.set_content(message)
    timeout = float(os.getenv("SMTP_TIMEOUT_SECONDS", "10"))
    with smtplib.SMTP(server, timeout=timeout) as s:
        s.send_message(msg)


def send_sms(to_number: str, message: str):
    if os.getenv("TESTING") == "1":
        SMS_OUTBOX.append((to_number, message))
        return
    provider = os.getenv("SMS_PROVIDER")
    if provider:
        _logger.info("SMS provider %s not wired; skipping message to %s", provider, to_number)


class TrusteeNotifier:
    """Deliver trustee messages over email and SMS.

    Only decides how a message travels. When to send is the caller's concern.
    """

    def send(self, trustee, message_kind: str) -> None:
        try:
            subject, template = MESSAGE_TEMPLATES[message_kind]
        except KeyError:
            raise ValueError(f"unknown message kind {message_kind!r}") from None
        owner = trustee.owner
        body = template.format(
            owner=(owner.full_name or owner.email) if owner else "Someone",
            code=trustee.verification_code or "",
        )
        try:
            send_email(trustee.email, subject, body)
        except (smtplib.SMTPException, OSError) as exc:
            raise NotificationDeliveryError(
                f"email to trustee {trustee.id} failed: {exc}"
            ) from exc
        if trustee.phone_number:
            send_sms(trustee.phone_number, body)


def get_notifier() -> TrusteeNotifier:
    return TrusteeNotifier()
