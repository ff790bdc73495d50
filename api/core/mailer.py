"""
Outbound email: Jinja2-rendered HTML templates sent over SMTP.

Templates live in `core/templates/emails/`. `send_templated_email` is
blocking; call it through `run_in_threadpool` from request handlers or hand
`send_templated_email_quietly` to FastAPI's `BackgroundTasks`.
"""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

from . import config

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent / "templates" / "emails"

_env = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=select_autoescape(["html"]),
)


class MailerError(RuntimeError):
    pass


def smtp_host() -> str:
    return config.env_str("SMTP_HOST", "smtp.gmail.com")


def smtp_port() -> int:
    return config.env_int("SMTP_PORT", 587)


def smtp_user() -> str:
    return config.env_str("SMTP_USER")


def smtp_password() -> str:
    return config.env_str("SMTP_PASSWORD")


def mail_from() -> str:
    return config.env_str("MAIL_FROM", smtp_user())


def admin_email() -> str:
    return config.env_str("ADMIN_EMAIL", mail_from())


def render(template_name: str, replacements: dict) -> str:
    return _env.get_template(template_name).render(**replacements)


def send_templated_email(*, template_name: str, to_email: str, subject: str, replacements: dict) -> None:
    if not smtp_user() or not smtp_password():
        raise MailerError("SMTP credentials are not configured.")
    if not to_email:
        raise MailerError("Recipient address is empty.")

    message = EmailMessage()
    message["From"] = mail_from()
    message["To"] = to_email
    message["Subject"] = subject
    message.set_content("This message requires an HTML capable mail client.")
    message.add_alternative(render(template_name, replacements), subtype="html")

    try:
        with smtplib.SMTP(smtp_host(), smtp_port(), timeout=15) as server:
            server.starttls()
            server.login(smtp_user(), smtp_password())
            server.send_message(message)
    except (smtplib.SMTPException, OSError) as exc:
        raise MailerError(f"Failed to send '{template_name}' email.") from exc

    logger.info("email_sent template=%s", template_name)


def send_templated_email_quietly(*, template_name: str, to_email: str, subject: str, replacements: dict) -> None:
    """
    BackgroundTasks entrypoint for best-effort notifications; never raises.
    """
    try:
        send_templated_email(
            template_name=template_name,
            to_email=to_email,
            subject=subject,
            replacements=replacements,
        )
    except Exception:
        logger.exception("email_failed template=%s", template_name)
