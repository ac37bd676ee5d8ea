import os
from email.message import EmailMessage
from typing import Iterable
from dotenv import load_dotenv
import aiosmtplib

load_dotenv()

MAIL_USERNAME = os.getenv('MAIL_USERNAME')
_raw_password = os.getenv('MAIL_PASSWORD')
MAIL_PASSWORD = None
if _raw_password is not None:
    cleaned = _raw_password.strip().strip('"').strip()
    # Gmail app passwords are shown with spaces but sent without them
    MAIL_PASSWORD = cleaned.replace(' ', '') if 'gmail' in os.getenv('MAIL_SERVER', '').lower() else cleaned
MAIL_FROM = os.getenv('MAIL_FROM', MAIL_USERNAME)
MAIL_PORT = int(os.getenv('MAIL_PORT', '587'))
MAIL_SERVER = os.getenv('MAIL_SERVER', 'smtp.gmail.com')
BRAND_NAME = os.getenv('BRAND_NAME', 'Marketplace')


def render_verification_email(code: str, flow: str, ttl_minutes: int) -> tuple[str, str, str]:
    """Return (subject, html, plain) for a verification code message."""
    intro = (
        "Here is your code to sign in:"
        if flow == "login"
        else "Here is your code to finish creating your account:"
    )
    subject = f"Your verification code: {code}"
    html = (
        f"<div style='font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;'>"
        f"<h1 style='text-align: center; color: #00d4ff;'>{BRAND_NAME}</h1>"
        f"<p style='text-align: center; color: #555;'>Security verification</p>"
        f"<p style='text-align: center;'>{intro}</p>"
        f"<p style='text-align: center; font-size: 36px; font-weight: bold; letter-spacing: 8px;'>{code}</p>"
        f"<p style='text-align: center; color: #888; font-size: 14px;'>This code expires in {ttl_minutes} minutes.</p>"
        f"<p style='text-align: center; color: #888; font-size: 12px;'>If you did not request this code, ignore this email.</p>"
        f"</div>"
    )
    plain = f"{intro} {code}\nThis code expires in {ttl_minutes} minutes."
    return subject, html, plain


async def send_email_html(subject: str, recipients: Iterable[str], html_body: str, plain_fallback: str | None = None) -> None:
    """
    Send an HTML email over SMTP.

    - STARTTLS on 587 by default.
    - Direct TLS when the port is 465.
    - Requires MAIL_USERNAME and MAIL_PASSWORD; MAIL_FROM, MAIL_PORT and MAIL_SERVER are optional.
    """
    if not MAIL_USERNAME or not MAIL_PASSWORD:
        raise RuntimeError("MAIL_USERNAME/MAIL_PASSWORD are not configured")

    recipients = list(recipients)
    if not recipients:
        raise ValueError("recipients must not be empty")

    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = MAIL_FROM or MAIL_USERNAME
    msg["To"] = ", ".join(recipients)

    if not plain_fallback:
        plain_fallback = "This message contains HTML content. Enable HTML in your mail client to view it."
    msg.set_content(plain_fallback)
    msg.add_alternative(html_body, subtype="html")

    implicit_tls = MAIL_PORT == 465
    await aiosmtplib.send(
        msg,
        hostname=MAIL_SERVER,
        port=MAIL_PORT,
        username=MAIL_USERNAME,
        password=MAIL_PASSWORD,
        use_tls=implicit_tls,
        start_tls=not implicit_tls,
    )
