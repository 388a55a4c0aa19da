"""Email (SMTP) alert channel."""

from __future__ import annotations

import smtplib
from email.message import EmailMessage

from taproom.core.errors import ConfigError, TransientError
from taproom.core.settings import TaproomSettings
from taproom.framework.alerts.base import BaseChannel
from taproom.framework.alerts.protocol import Alert, AlertSeverity, ChannelType, DeliveryResult


class EmailChannel(BaseChannel):
    """
    Sends each alert as one plain-text message to a fixed recipient list.

    The subject is the alert title. ``X-Taproom-Fingerprint`` carries the
    cooldown key so mail filters can thread repeats of the same failure.
    SMTP and socket errors are reported as a failed delivery wrapping a
    :class:`~taproom.core.errors.TransientError`.
    """

    channel_type = ChannelType.EMAIL

    def __init__(
        self,
        name: str,
        smtp_host: str,
        from_address: str,
        recipients: list[str],
        *,
        smtp_port: int = 587,
        smtp_user: str | None = None,
        smtp_password: str | None = None,
        use_tls: bool = True,
        timeout: float = 10.0,
        min_severity: AlertSeverity = AlertSeverity.ERROR,
    ):
        super().__init__(name, min_severity=min_severity)
        if not recipients:
            raise ConfigError("EmailChannel needs at least one recipient")
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.from_address = from_address
        self.recipients = list(recipients)
        self.use_tls = use_tls
        self.timeout = timeout
        self._credentials = (smtp_user, smtp_password) if smtp_user and smtp_password else None

    @classmethod
    def from_settings(cls, settings: TaproomSettings) -> EmailChannel:
        return cls(
            "email",
            settings.smtp_host,
            settings.alert_from,
            settings.alert_to,
            smtp_port=settings.smtp_port,
            smtp_user=settings.smtp_username,
            smtp_password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
        )

    def build_message(self, alert: Alert) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = alert.title
        msg["From"] = self.from_address
        msg["To"] = ", ".join(self.recipients)
        if alert.fingerprint:
            msg["X-Taproom-Fingerprint"] = alert.fingerprint
        msg.set_content(alert.message)
        return msg

    def send(self, alert: Alert) -> DeliveryResult:
        message = self.build_message(alert)
        try:
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as smtp:
                if self.use_tls:
                    smtp.starttls()
                if self._credentials:
                    smtp.login(*self._credentials)
                smtp.send_message(message)
        except OSError as e:
            # smtplib.SMTPException is an OSError subclass
            return DeliveryResult.fail(self.name, TransientError(f"SMTP delivery failed: {e}", cause=e))
        return DeliveryResult.ok(self.name)
