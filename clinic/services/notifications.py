import logging
import smtplib
from email.message import EmailMessage

from ..core.config import settings
from .side_effects import run_best_effort

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Out-of-band delivery of one-time codes and welcome credentials.

    Subclasses implement `deliver`; the public methods are best effort and
    report success as a bool instead of raising.
    """

    def deliver(self, address: str, subject: str, body: str) -> None:
        raise NotImplementedError

    def send_one_time_code(self, address: str, code: str) -> bool:
        body = (
            f"Your verification code for the Venus Healthcare Portal is: {code}. "
            f"It will expire in {settings.OTP_EXPIRE_MINUTES} minutes."
        )
        return run_best_effort(
            f"One-time code to {address}", self.deliver, address, "Your Venus Healthcare OTP", body
        )

    def send_welcome_credentials(self, address: str, name: str, temporary_password: str, role: str) -> bool:
        body = (
            f"Hello {name},\n\n"
            f"Your account has been created as a {role} on the Venus Healthcare Portal.\n"
            f"Email: {address}\nPassword: {temporary_password}\n\n"
            f"Log in at {settings.FRONTEND_URL}/login and change your password after your first login."
        )
        return run_best_effort(
            f"Welcome credentials to {address}", self.deliver, address, "Welcome to Venus Healthcare Portal", body
        )


class SmtpNotificationDispatcher(NotificationDispatcher):
    def __init__(self, host: str, port: int, user: str = None, password: str = None, sender: str = None):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.sender = sender or settings.MAIL_FROM

    def deliver(self, address: str, subject: str, body: str) -> None:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = address
        message["Subject"] = subject
        message.set_content(body)

        with smtplib.SMTP(self.host, self.port, timeout=10) as smtp:
            smtp.starttls()
            if self.user:
                smtp.login(self.user, self.password)
            smtp.send_message(message)
        logger.info(f"Email '{subject}' sent to {address}")


class LoggingNotificationDispatcher(NotificationDispatcher):
    """Development dispatcher: writes the message to the log."""

    def deliver(self, address: str, subject: str, body: str) -> None:
        logger.info(f"[DEV MAIL] to={address} subject='{subject}'\n{body}")


def build_dispatcher() -> NotificationDispatcher:
    if settings.SMTP_HOST:
        return SmtpNotificationDispatcher(
            settings.SMTP_HOST,
            settings.SMTP_PORT,
            settings.SMTP_USER,
            settings.SMTP_PASSWORD,
        )
    return LoggingNotificationDispatcher()
