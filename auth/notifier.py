"""
auth/notifier.py -- Outbound email for verification codes and reset passwords.

Notifier is the interface the service depends on. SmtpNotifier is the
production implementation: Jinja2 renders the plain-text body from
auth/templates/, smtplib hands the message to the configured relay.

Failure semantics: one attempt, no retry. Any SMTP or socket error is raised
as DeliveryError so the caller sees it immediately. The rendered body holds a
secret (code or password), so message contents are never logged.
"""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from pathlib import Path
from typing import Protocol

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from auth.errors import DeliveryError
from core.config import Settings, get_settings

logger = logging.getLogger("sessionauth.auth.notifier")

_TEMPLATES_DIR = Path(__file__).parent / "templates"


class Notifier(Protocol):
    def send_verification_email(self, email: str, code: str) -> None: ...

    def send_password_reset_email(self, email: str, new_password: str) -> None: ...


class SmtpNotifier:
    """Send auth emails through an SMTP relay.

    Usage:
        notifier = SmtpNotifier()
        notifier.send_verification_email("a@x.com", "K7QX2M9D")
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._env = Environment(
            loader=FileSystemLoader(str(_TEMPLATES_DIR)),
            autoescape=False,  # plain-text bodies
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def send_verification_email(self, email: str, code: str) -> None:
        body = self._render(
            "verification_email.txt.j2",
            code=code,
            ttl_minutes=max(1, self._settings.code_ttl_seconds // 60),
        )
        self._send(email, f"{self._settings.app_name}: verify your email address", body)

    def send_password_reset_email(self, email: str, new_password: str) -> None:
        body = self._render("password_reset_email.txt.j2", password=new_password)
        self._send(email, f"{self._settings.app_name}: your new password", body)

    def _render(self, template_name: str, **variables) -> str:
        template = self._env.get_template(template_name)
        return template.render(app_name=self._settings.app_name, **variables)

    def _build_message(self, to_email: str, subject: str, body: str) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self._settings.mail_from
        msg["To"] = to_email
        msg["Subject"] = subject
        msg.set_content(body)
        return msg

    def _send(self, to_email: str, subject: str, body: str) -> None:
        cfg = self._settings
        msg = self._build_message(to_email, subject, body)
        try:
            with smtplib.SMTP(cfg.smtp_host, cfg.smtp_port, timeout=cfg.smtp_timeout) as smtp:
                if cfg.smtp_use_tls:
                    smtp.starttls()
                if cfg.smtp_username and cfg.smtp_password:
                    smtp.login(cfg.smtp_username, cfg.smtp_password)
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Email to %s failed: %s", to_email, exc.__class__.__name__)
            raise DeliveryError() from exc
        logger.info("Email '%s' sent to %s", subject, to_email)
