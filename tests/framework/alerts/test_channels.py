"""Tests for the console and email alert channels."""

from __future__ import annotations

import smtplib

import pytest
from rich.console import Console

from taproom.core.errors import ConfigError, TransientError
from taproom.framework.alerts import (
    Alert,
    AlertSeverity,
    ChannelType,
    ConsoleChannel,
    DeliveryResult,
    EmailChannel,
)


def _alert(severity: AlertSeverity = AlertSeverity.ERROR) -> Alert:
    return Alert(
        severity=severity,
        title="[Taproom] exception — queue: beer-enrichment",
        message="Worker: taproom-worker\nOutcome: exception",
        source="taproom",
    )


class TestAlert:
    def test_default_fingerprint(self):
        alert = _alert()
        assert alert.fingerprint == "taproom:[Taproom] exception — queue: beer-enrichment"

    def test_to_dict(self):
        data = _alert().to_dict()
        assert data["severity"] == "ERROR"
        assert data["error_count"] == 0
        assert "message" not in data

    def test_severity_order(self):
        assert AlertSeverity.CRITICAL >= AlertSeverity.ERROR
        assert AlertSeverity.INFO < AlertSeverity.WARNING
        assert not AlertSeverity.WARNING >= AlertSeverity.ERROR

    def test_delivery_result(self):
        assert DeliveryResult.ok("email").success is True
        failed = DeliveryResult.fail("email", RuntimeError("smtp down"))
        assert (failed.success, failed.message) == (False, "smtp down")


class TestConsoleChannel:
    def test_prints_panel(self):
        console = Console(record=True, width=120)
        channel = ConsoleChannel(console=console)
        alert = _alert()
        alert.error_count, alert.suppressed_count = 3, 2
        result = channel.send(alert)
        assert result.success
        text = console.export_text()
        assert "queue: beer-enrichment" in text
        assert "Outcome: exception" in text
        assert "3 error(s)" in text
        assert "2 suppressed" in text

    def test_severity_filter_and_disable(self):
        channel = ConsoleChannel(min_severity=AlertSeverity.ERROR)
        assert channel.channel_type == ChannelType.CONSOLE
        assert channel.should_send(_alert(AlertSeverity.WARNING)) is False
        assert channel.should_send(_alert(AlertSeverity.CRITICAL)) is True
        channel.enabled = False
        assert channel.should_send(_alert(AlertSeverity.CRITICAL)) is False


class FakeSMTP:
    instances: list[FakeSMTP] = []
    fail_with: Exception | None = None

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.sent = []
        self.started_tls = False
        self.logged_in = None
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *args):
        return False

    def starttls(self):
        self.started_tls = True

    def login(self, user, password):
        self.logged_in = (user, password)

    def send_message(self, msg):
        if FakeSMTP.fail_with is not None:
            raise FakeSMTP.fail_with
        self.sent.append(msg)


@pytest.fixture
def fake_smtp(monkeypatch):
    FakeSMTP.instances = []
    FakeSMTP.fail_with = None
    monkeypatch.setattr(smtplib, "SMTP", FakeSMTP)
    return FakeSMTP


class TestEmailChannel:
    def _channel(self, **kwargs):
        return EmailChannel(
            "email",
            "smtp.example.com",
            "alerts@taproom.local",
            ["ops@example.com", "dev@example.com"],
            **kwargs,
        )

    def test_requires_recipients(self):
        with pytest.raises(ConfigError):
            EmailChannel("email", "smtp.example.com", "alerts@taproom.local", [])

    def test_build_message(self):
        msg = self._channel().build_message(_alert())
        assert msg["Subject"] == "[Taproom] exception — queue: beer-enrichment"
        assert msg["From"] == "alerts@taproom.local"
        assert msg["To"] == "ops@example.com, dev@example.com"
        assert "Outcome: exception" in msg.get_content()

    def test_send(self, fake_smtp):
        channel = self._channel(smtp_port=2525, smtp_user="u", smtp_password="p", use_tls=True)
        result = channel.send(_alert())
        assert result.success
        [smtp] = fake_smtp.instances
        assert (smtp.host, smtp.port) == ("smtp.example.com", 2525)
        assert smtp.started_tls is True
        assert smtp.logged_in == ("u", "p")
        assert len(smtp.sent) == 1

    def test_send_failure_is_reported(self, fake_smtp):
        fake_smtp.fail_with = smtplib.SMTPException("relay denied")
        result = self._channel(use_tls=False).send(_alert())
        assert result.success is False
        assert isinstance(result.error, TransientError)
        assert "relay denied" in result.message

    def test_socket_error_is_reported(self, fake_smtp):
        fake_smtp.fail_with = ConnectionRefusedError("connection refused")
        result = self._channel().send(_alert())
        assert result.success is False
        assert "connection refused" in result.message

    def test_fingerprint_header(self):
        msg = self._channel().build_message(_alert())
        assert msg["X-Taproom-Fingerprint"].startswith("taproom:")

    def test_from_settings(self, settings):
        settings = settings.model_copy(
            update={"alert_to": ["ops@example.com"], "smtp_host": "mail.internal", "smtp_port": 2525}
        )
        channel = EmailChannel.from_settings(settings)
        assert channel.recipients == ["ops@example.com"]
        assert (channel.smtp_host, channel.smtp_port) == ("mail.internal", 2525)
        assert channel.use_tls is False
