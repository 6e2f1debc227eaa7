import smtplib
from unittest.mock import MagicMock, patch

from clubauth.services.email import EmailDelivery, EmailKind, EmailService, redact_email


def _configured():
    return EmailService(
        smtp_host="smtp.example.com",
        smtp_user="club@example.com",
        smtp_password="app-password",
        api_base_url="https://api.example.org/",
        frontend_base_url="https://club.example.org",
    )


def test_redact_email():
    assert redact_email("alice@example.com") == "al***@example.com"
    assert redact_email("garbage") == "redacted"


def test_verification_message():
    service = _configured()
    message = service.build_message(
        EmailDelivery(EmailKind.VERIFICATION, "alice@example.com", "tok123", "Alice")
    )

    body = message.get_content()
    assert message["To"] == "alice@example.com"
    assert message["From"] == "Tech2Gether <club@example.com>"
    assert "Hi Alice," in body
    assert "https://api.example.org/auth/verify-email/tok123" in body
    assert "24 hours" in body


def test_reset_message_points_at_frontend():
    service = _configured()
    message = service.build_message(
        EmailDelivery(EmailKind.PASSWORD_RESET, "alice@example.com", "tok456")
    )

    body = message.get_content()
    assert "Hi there," in body
    assert "https://club.example.org/reset-password?token=tok456" in body
    assert "60 minutes" in body


def test_unconfigured_delivery_is_logged_not_sent():
    service = EmailService()
    with (
        patch("clubauth.services.email.smtplib.SMTP") as mock_smtp,
        patch("clubauth.services.email.logger") as mock_logger,
    ):
        sent = service.deliver(EmailDelivery(EmailKind.VERIFICATION, "alice@example.com", "tok123"))

    assert sent is False
    mock_smtp.assert_not_called()
    logged = mock_logger.info.call_args[0][0]
    assert "EMAIL_DEV_MODE" in logged
    assert "tok123" not in logged
    assert "alice@example.com" not in logged


def test_starttls_delivery():
    service = _configured()
    server = MagicMock()
    with patch("clubauth.services.email.smtplib.SMTP") as mock_smtp:
        mock_smtp.return_value.__enter__.return_value = server
        sent = service.deliver(EmailDelivery(EmailKind.VERIFICATION, "alice@example.com", "tok123"))

    assert sent is True
    server.starttls.assert_called_once()
    server.login.assert_called_once_with("club@example.com", "app-password")
    server.send_message.assert_called_once()


def test_smtp_failure_is_swallowed_and_logged():
    service = _configured()
    with (
        patch(
            "clubauth.services.email.smtplib.SMTP",
            side_effect=smtplib.SMTPConnectError(421, "unavailable"),
        ),
        patch("clubauth.services.email.logger") as mock_logger,
    ):
        sent = service.deliver(EmailDelivery(EmailKind.PASSWORD_RESET, "alice@example.com", "tok456"))

    assert sent is False
    logged = mock_logger.error.call_args[0][0]
    assert "EMAIL_FAILED" in logged
    assert "tok456" not in logged
