"""Tests for the Resend email service."""

from unittest.mock import patch

import pytest

from blindpod.config import Config
from blindpod.errors import DeliveryError
from blindpod.services.email_service import EmailService, _redact_email


@pytest.fixture
def configured(monkeypatch):
    monkeypatch.setenv("RESEND_API_KEY", "re_test_key")
    monkeypatch.setenv("RESEND_FROM_EMAIL", "news@blindpod.example")
    monkeypatch.setenv("RESEND_FROM_NAME", "Blindpod")
    return Config()


class TestRedactEmail:
    def test_redacts_local_part(self):
        assert _redact_email("someone@example.com") == "***@example.com"

    def test_invalid_email(self):
        assert _redact_email("not-an-email") == "<invalid-email>"


class TestEmailService:
    """Tests for sending email through Resend."""

    def test_not_configured(self, monkeypatch):
        monkeypatch.setenv("RESEND_API_KEY", "")
        service = EmailService(Config())

        assert service.is_configured() is False
        with pytest.raises(DeliveryError) as exc_info:
            service.send_email("a@example.com", "Subject", "Body")

        assert exc_info.value.recipient == "a@example.com"

    def test_send_email(self, configured):
        service = EmailService(configured)

        with patch("blindpod.services.email_service.resend.Emails.send") as send:
            send.return_value = {"id": "msg-123"}
            message_id = service.send_email("a@example.com", "Subject", "Body")

        assert message_id == "msg-123"
        params = send.call_args[0][0]
        assert params["from"] == "Blindpod <news@blindpod.example>"
        assert params["to"] == ["a@example.com"]
        assert params["subject"] == "Subject"
        assert params["text"] == "Body"
        assert "html" not in params

    def test_send_email_with_html(self, configured):
        service = EmailService(configured)

        with patch("blindpod.services.email_service.resend.Emails.send") as send:
            send.return_value = {"id": "msg-123"}
            service.send_email("a@example.com", "Subject", "Body", html_content="<p>Body</p>")

        assert send.call_args[0][0]["html"] == "<p>Body</p>"

    def test_provider_error_becomes_delivery_error(self, configured):
        service = EmailService(configured)

        with patch("blindpod.services.email_service.resend.Emails.send") as send:
            send.side_effect = RuntimeError("rate limited")
            with pytest.raises(DeliveryError, match="rate limited"):
                service.send_email("a@example.com", "Subject", "Body")
