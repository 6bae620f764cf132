import smtplib

import pytest

from utils import emailing
from utils.emailing import EmailDeliveryError, send_otp_email, render_email


class FakeSMTP:
    instances = []

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.sent = []
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        pass

    def login(self, user, password):
        self.credentials = (user, password)

    def sendmail(self, sender, recipients, message):
        self.sent.append((sender, recipients, message))


@pytest.fixture
def smtp(monkeypatch):
    FakeSMTP.instances = []
    monkeypatch.setattr(emailing, "SMTP_HOST", "smtp.test")
    monkeypatch.setattr(emailing, "SMTP_PASS", "secret")
    monkeypatch.setattr(emailing, "SMTP_USER", "mailer")
    monkeypatch.setattr(emailing, "MAIL_FROM", "no-reply@linkbeet.in")
    monkeypatch.setattr(emailing.smtplib, "SMTP", FakeSMTP)
    return FakeSMTP


def test_mock_mode_logs_code_instead_of_sending(monkeypatch, caplog):
    monkeypatch.setattr(emailing, "SMTP_HOST", "")
    monkeypatch.setattr(emailing, "EMAIL_REQUIRE_DELIVERY", False)

    send_otp_email("guest@example.com", "482913", "wifi_access", "Cafe Blue", 10)

    assert any("482913" in r.getMessage() and "MOCK" in r.getMessage() for r in caplog.records)


def test_unconfigured_smtp_fails_when_delivery_required(monkeypatch):
    monkeypatch.setattr(emailing, "SMTP_HOST", "")
    monkeypatch.setattr(emailing, "EMAIL_REQUIRE_DELIVERY", True)

    with pytest.raises(EmailDeliveryError):
        send_otp_email("guest@example.com", "482913", "wifi_access", "Cafe Blue", 10)


def test_sends_rendered_otp_email(smtp):
    send_otp_email("guest@example.com", "482913", "wifi_access", "Cafe Blue", 10)

    server = smtp.instances[0]
    sender, recipients, message = server.sent[0]
    assert server.host == "smtp.test"
    assert sender == "no-reply@linkbeet.in"
    assert recipients == ["guest@example.com"]
    assert "Cafe Blue WiFi verification code" in message
    assert server.credentials == ("mailer", "secret")


def test_smtp_errors_become_delivery_errors(smtp, monkeypatch):
    def refuse(self, sender, recipients, message):
        raise smtplib.SMTPRecipientsRefused({"guest@example.com": (550, b"no such user")})

    monkeypatch.setattr(FakeSMTP, "sendmail", refuse)
    with pytest.raises(EmailDeliveryError):
        send_otp_email("guest@example.com", "482913", "wifi_access", "Cafe Blue", 10)


def test_template_renders_code_and_venue():
    html = render_email(
        "otp_email.html", title="Verify your email", code="482913",
        purpose="WiFi access", venue_name="Cafe <Blue>", expiry_minutes=10,
    )
    assert "482913" in html
    assert "Cafe &lt;Blue&gt;" in html
    assert "10 minutes" in html
