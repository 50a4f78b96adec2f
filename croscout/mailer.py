from email.message import EmailMessage
from email.utils import formataddr

import aiosmtplib

from .config import settings

SMTP_TIMEOUT = 10


class MailerNotConfigured(RuntimeError):
    pass


def build_message(to: list[str], subject: str, text: str, html: str | None = None) -> EmailMessage:
    msg = EmailMessage()
    msg["From"] = formataddr((settings.mail_sender_name, settings.mail_user or ""))
    msg["To"] = ", ".join(to)
    msg["Subject"] = subject
    msg.set_content(text)
    if html:
        msg.add_alternative(html, subtype="html")
    return msg


async def send_email(to: list[str], subject: str, text: str, html: str | None = None):
    if not settings.mail_user or not settings.mail_password:
        raise MailerNotConfigured("MAIL_USER / MAIL_PASSWORD are not set")

    message = build_message(to, subject, text, html)
    await aiosmtplib.send(
        message,
        hostname=settings.mail_host,
        port=settings.mail_port,
        username=settings.mail_user,
        password=settings.mail_password,
        use_tls=settings.mail_port == 465,
        timeout=SMTP_TIMEOUT,
    )
