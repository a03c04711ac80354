"""
mailer.py — Outbound email for the contact and volunteer forms
==============================================================
Messages are rendered from Jinja2 templates under ``templates/mail`` (one
``.txt`` and one ``.html`` per message) and sent over SMTP with STARTTLS.
A single ``Mailer`` is built at startup and reached via ``app.state.mailer``.
"""
from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid
from pathlib import Path
from typing import Any, Dict, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from .config import Settings

logger = logging.getLogger("community.mailer")

TEMPLATES = Environment(
    loader=FileSystemLoader(str(Path(__file__).parent / "templates" / "mail")),
    autoescape=select_autoescape(enabled_extensions=("html",), default_for_string=False),
    trim_blocks=True,
    lstrip_blocks=True,
)


@dataclass
class RenderedMail:
    subject: str
    text: str
    html: str


def render_contact(data: Dict[str, Any]) -> RenderedMail:
    return RenderedMail(
        subject=f"Contact Form Submission from {data['name']}",
        text=TEMPLATES.get_template("contact.txt").render(**data),
        html=TEMPLATES.get_template("contact.html").render(**data),
    )


def render_volunteer(data: Dict[str, Any]) -> RenderedMail:
    return RenderedMail(
        subject=f"Volunteer Registration from {data['first_name']} {data['last_name']}",
        text=TEMPLATES.get_template("volunteer.txt").render(**data),
        html=TEMPLATES.get_template("volunteer.html").render(**data),
    )


class Mailer:
    def __init__(
        self,
        host: str,
        port: int,
        username: str = "",
        password: str = "",
        sender: str = "",
        default_recipient: str = "",
        timeout: int = 10,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender
        self.default_recipient = default_recipient
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "Mailer":
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_user,
            password=settings.smtp_pass,
            sender=settings.smtp_from,
            default_recipient=settings.contact_recipient,
        )

    @property
    def configured(self) -> bool:
        return bool(self.username and self.password)

    def _connect(self) -> smtplib.SMTP:
        server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        server.starttls()
        if self.username and self.password:
            server.login(self.username, self.password)
        return server

    def verify_connection(self) -> bool:
        try:
            server = self._connect()
            server.noop()
            server.quit()
        except (smtplib.SMTPException, OSError) as exc:
            logger.warning("Email server connection failed: %s", exc)
            return False
        logger.info("Email server is ready to take our messages")
        return True

    def send(self, mail: RenderedMail, to: Optional[str] = None) -> bool:
        """Send *mail*; returns False (and logs) when delivery fails."""
        recipient = to or self.default_recipient
        msg = MIMEMultipart("alternative")
        msg["From"] = self.sender
        msg["To"] = recipient
        msg["Subject"] = mail.subject
        msg["Message-ID"] = make_msgid()
        msg.attach(MIMEText(mail.text, "plain"))
        msg.attach(MIMEText(mail.html, "html"))

        try:
            server = self._connect()
            server.sendmail(self.sender, [recipient], msg.as_string())
            server.quit()
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Email sending failed (%s): %s", mail.subject, exc)
            return False

        logger.info("Email sent: %s", msg["Message-ID"])
        return True
