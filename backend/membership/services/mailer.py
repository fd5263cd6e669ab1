from __future__ import annotations

import smtplib
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import Optional

import structlog
from fastapi import Request

from membership.config import Settings, get_settings

logger = structlog.get_logger(__name__)


class Mailer:
    """Sends plain notification mail over SMTP.

    Without ``SMTP_HOST`` nothing is sent and the message is logged instead,
    which is how local development picks up verification links.
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or get_settings()

    def send(self, to_email: str, subject: str, body: str) -> None:
        settings = self.settings
        if not settings.SMTP_HOST:
            logger.info("mail.dev_outbox", to=to_email, subject=subject, body=body)
            return

        msg = MIMEText(body, "plain", "utf-8")
        msg["Subject"] = subject
        msg["From"] = formataddr((settings.MAIL_FROM_NAME, settings.MAIL_FROM))
        msg["To"] = to_email

        # Add timeout to prevent indefinite hangs
        with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=30) as server:
            server.starttls()
            if settings.SMTP_USER:
                server.login(settings.SMTP_USER, settings.SMTP_PASSWORD or "")
            server.sendmail(settings.MAIL_FROM, [to_email], msg.as_string())
        logger.info("mail.sent", to=to_email, subject=subject)


def verification_url(token: str, settings: Optional[Settings] = None) -> str:
    settings = settings or get_settings()
    return f"{settings.PUBLIC_BASE_URL.rstrip('/')}/api/verify-email?token={token}"


def send_verification_mail(mailer: Mailer, to_email: str, name: str, token: str) -> None:
    url = verification_url(token, mailer.settings)
    body = (
        f"{name} 様\n\n"
        "ご登録ありがとうございます。\n"
        "以下のリンクをクリックしてメールアドレスの確認を完了してください（有効期限: 1時間）。\n\n"
        f"{url}\n"
    )
    mailer.send(to_email, "メールアドレスの確認", body)


def get_mailer(request: Request) -> Mailer:
    return request.app.state.mailer
