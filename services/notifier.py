"""Alert delivery over SMTP."""

from __future__ import annotations

import logging
import smtplib
import ssl
from datetime import datetime
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from pathlib import Path
from typing import Dict, Optional, Protocol, Tuple

from jinja2 import Environment, FileSystemLoader, select_autoescape

from models.records import MotorState
from settings import Settings

logger = logging.getLogger(__name__)

ALERT_THRESHOLD_CM = 200
ALERT_SUBJECT = "DRAINAGE ALERT: Water Level Critical"
SENDER_NAME = "Smart Drainage System"
ACTION_TEXT = (
    "The water level has exceeded the safe threshold. "
    "Please check the drainage system immediately."
)

_SMTPS_PORT = 465

_templates = Environment(
    loader=FileSystemLoader(str(Path(__file__).resolve().parent / "templates")),
    autoescape=select_autoescape(["html"]),
)


class NotifierError(RuntimeError):
    """Raised when the notification transport is unconfigured or unreachable."""


class Notifier(Protocol):
    def deliver(self, distance: float, motor: MotorState) -> bool:
        """Send an alert; return True only when delivery is confirmed."""
        ...

    def verify(self) -> None:
        """Raise ``NotifierError`` if the transport cannot be used."""
        ...

    def describe(self) -> Dict[str, Optional[str]]:
        ...


def format_alert(
    distance: float, motor: MotorState, now: datetime
) -> Tuple[str, str, str]:
    """Build ``(subject, text_body, html_body)`` for a water level alert."""
    timestamp = now.strftime("%Y-%m-%d %H:%M:%S %Z").strip()
    context = {
        "distance": f"{distance:g}",
        "motor": motor.value,
        "timestamp": timestamp,
        "threshold": ALERT_THRESHOLD_CM,
        "action": ACTION_TEXT,
    }
    text = (
        "Critical Water Level Detected\n\n"
        f"Distance Reading: {context['distance']} cm\n"
        f"Motor Status: {context['motor']}\n"
        f"Timestamp: {timestamp}\n"
        f"Alert Threshold: {ALERT_THRESHOLD_CM} cm\n\n"
        f"Action Required: {ACTION_TEXT}\n"
    )
    html = _templates.get_template("alert_email.html").render(**context)
    return ALERT_SUBJECT, text, html


class EmailNotifier:
    """Delivers alerts through an authenticated SMTP relay.

    Port 465 uses implicit TLS; any other port is upgraded with STARTTLS.
    """

    def __init__(
        self,
        host: str,
        port: int,
        user: Optional[str],
        password: Optional[str],
        recipient: Optional[str],
        service: str = "gmail",
        timeout: float = 15.0,
    ) -> None:
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.recipient = recipient
        self.service = service
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "EmailNotifier":
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            user=settings.email_user,
            password=settings.email_password,
            recipient=settings.alert_recipient,
            service=settings.email_service,
            timeout=settings.notify_timeout,
        )

    def describe(self) -> Dict[str, Optional[str]]:
        return {"service": self.service, "from": self.user, "to": self.recipient}

    def verify(self) -> None:
        self._require_config()
        try:
            with self._connect() as client:
                client.noop()
        except (smtplib.SMTPException, OSError) as exc:
            raise NotifierError(str(exc) or exc.__class__.__name__) from exc

    def deliver(self, distance: float, motor: MotorState) -> bool:
        try:
            self._require_config()
        except NotifierError as exc:
            logger.error("Alert email not sent", extra={"reason": str(exc)})
            return False

        subject, text, html = format_alert(distance, motor, datetime.now().astimezone())
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = formataddr((SENDER_NAME, self.user))
        message["To"] = self.recipient
        message["Message-ID"] = make_msgid(domain=self.host)
        message.set_content(text)
        message.add_alternative(html, subtype="html")

        try:
            with self._connect() as client:
                client.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error(
                "Failed to send alert email: %s",
                exc,
                extra={"recipient": self.recipient, "distance": distance},
            )
            return False

        logger.info(
            "Alert email sent: %s",
            message["Message-ID"],
            extra={"recipient": self.recipient, "distance": distance},
        )
        return True

    def _require_config(self) -> None:
        missing = [
            name
            for name, value in (
                ("EMAIL_USER", self.user),
                ("EMAIL_PASS", self.password),
                ("ALERT_USER", self.recipient),
            )
            if not value
        ]
        if missing:
            raise NotifierError(f"Missing email configuration: {', '.join(missing)}")

    def _connect(self) -> smtplib.SMTP:
        context = ssl.create_default_context()
        client: smtplib.SMTP
        if self.port == _SMTPS_PORT:
            client = smtplib.SMTP_SSL(
                self.host, self.port, timeout=self.timeout, context=context
            )
        else:
            client = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        try:
            if self.port != _SMTPS_PORT:
                client.starttls(context=context)
            assert self.user is not None and self.password is not None
            client.login(self.user, self.password)
        except BaseException:
            client.close()
            raise
        return client
