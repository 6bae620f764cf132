import smtplib
import uuid
from datetime import datetime, timezone
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Optional
from jinja2 import Environment, FileSystemLoader, select_autoescape
import os

from core.config import (
    SMTP_HOST, SMTP_PORT, SMTP_USER, SMTP_PASS, MAIL_FROM, APP_NAME,
    EMAIL_REQUIRE_DELIVERY, logger,
)

# Jinja env
_templates_dir = os.path.join(os.path.dirname(__file__), "..", "templates")
_jinja_env = Environment(
    loader=FileSystemLoader(_templates_dir),
    autoescape=select_autoescape(["html", "xml"]),
)

EMAIL_BRAND_COLOR = os.getenv("EMAIL_BRAND_COLOR", "#6C5CE7")
EMAIL_BRAND_BG = os.getenv("EMAIL_BRAND_BG", "#F5F6FA")

OTP_PURPOSES = {
    "wifi_access": "WiFi access",
}


class EmailDeliveryError(Exception):
    """The OTP email could not be handed to the SMTP server."""


def smtp_configured() -> bool:
    return bool(SMTP_HOST and SMTP_PASS and MAIL_FROM)


def render_email(template_name: str, **context) -> str:
    base = {
        "app_name": APP_NAME,
        "brand_color": EMAIL_BRAND_COLOR,
        "brand_bg": EMAIL_BRAND_BG,
    }
    base.update(context or {})
    return _jinja_env.get_template(template_name).render(**base)


def send_email_smtp(
    to_addr: str,
    subject: str,
    html: str,
    text: Optional[str] = None,
    from_addr: Optional[str] = None,
    from_name: Optional[str] = None,
) -> None:
    """Send one HTML+text email. Raises EmailDeliveryError on any SMTP failure."""
    if not smtp_configured():
        raise EmailDeliveryError("SMTP not configured")

    sender = (from_addr or MAIL_FROM).strip()
    effective_from_name = from_name or APP_NAME
    display_from = f"{effective_from_name} <{sender}>" if effective_from_name and "<" not in sender else sender

    domain = sender.split("@")[-1] if "@" in sender else "linkbeet.in"
    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = display_from
    msg["To"] = to_addr
    msg["Message-ID"] = f"<{uuid.uuid4()}@{domain}>"
    msg["Date"] = datetime.now(timezone.utc).strftime("%a, %d %b %Y %H:%M:%S +0000")
    if not text:
        text = "Open this message in an HTML-capable email client."
    msg.attach(MIMEText(text, "plain", _charset="utf-8"))
    msg.attach(MIMEText(html or "", "html", _charset="utf-8"))

    try:
        with smtplib.SMTP(SMTP_HOST, SMTP_PORT, timeout=15) as server:
            server.starttls()
            if SMTP_USER or SMTP_PASS:
                server.login(SMTP_USER, SMTP_PASS)
            server.sendmail(sender, [to_addr], msg.as_string())
    except (smtplib.SMTPException, OSError) as ex:
        logger.exception(f"[email] SMTP send to {to_addr} failed: {ex}")
        raise EmailDeliveryError(str(ex)) from ex


def send_otp_email(
    email: str,
    code: str,
    purpose: str = "wifi_access",
    venue_name: Optional[str] = None,
    expiry_minutes: int = 10,
) -> None:
    """
    Deliver a verification code.

    Without SMTP configuration the code is only logged (mock mode) unless
    EMAIL_REQUIRE_DELIVERY is set, in which case that is a delivery failure.
    """
    if not smtp_configured():
        if EMAIL_REQUIRE_DELIVERY:
            raise EmailDeliveryError("SMTP not configured")
        logger.warning(f"[email] MOCK MODE - OTP for {email}: {code} ({purpose}, venue={venue_name or '-'})")
        return

    place = venue_name or APP_NAME
    subject = f"Your {place} WiFi verification code"
    html = render_email(
        "otp_email.html",
        title="Verify your email",
        code=code,
        purpose=OTP_PURPOSES.get(purpose, purpose),
        venue_name=place,
        expiry_minutes=expiry_minutes,
    )
    text = (
        f"Your verification code for {place} WiFi is: {code}\n\n"
        f"This code will expire in {expiry_minutes} minutes. If you did not request this, you can ignore this email."
    )
    send_email_smtp(email, subject, html, text)
    logger.info(f"[email] OTP email sent to {email}")


def get_mailer():
    """FastAPI dependency returning the OTP sender; tests override it."""
    return send_otp_email
