from __future__ import annotations

import logging
from dataclasses import dataclass
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional, Protocol, Sequence

import boto3
from jinja2 import Environment, PackageLoader, select_autoescape

logger = logging.getLogger(__name__)

_templates = Environment(
    loader=PackageLoader("smartsteps", "templates/email"),
    autoescape=select_autoescape(["html"]),
)


def render_email(template_name: str, **context) -> str:
    return _templates.get_template(template_name).render(**context)


@dataclass(frozen=True)
class Attachment:
    filename: str
    content: bytes
    mime_subtype: str = "pdf"


class Mailer(Protocol):
    def send(
        self,
        *,
        to: Sequence[str],
        subject: str,
        html: str,
        attachments: Sequence[Attachment] = (),
    ) -> Optional[str]:
        """Send one message and return the provider message id."""
        raise NotImplementedError


def build_message(*, sender: str, to: Sequence[str], subject: str, html: str, attachments: Sequence[Attachment]) -> MIMEMultipart:
    msg = MIMEMultipart("mixed")
    msg["Subject"] = subject[:200]
    msg["From"] = sender
    msg["To"] = ", ".join(to)
    msg.attach(MIMEText(html, "html", "utf-8"))
    for att in attachments:
        part = MIMEApplication(att.content, _subtype=att.mime_subtype)
        part.add_header("Content-Disposition", "attachment", filename=att.filename)
        msg.attach(part)
    return msg


class SESMailer(Mailer):
    """Amazon SES v2 raw-message sender.

    With ``enabled=False`` messages are only logged, which is what
    development and tests run with.
    """

    def __init__(self, *, sender: str, region: str, enabled: bool = True):
        self._sender = sender
        self._region = region
        self._enabled = enabled
        self._client = None

    def _sesv2(self):
        if self._client is None:
            self._client = boto3.client("sesv2", region_name=self._region)
        return self._client

    def send(
        self,
        *,
        to: Sequence[str],
        subject: str,
        html: str,
        attachments: Sequence[Attachment] = (),
    ) -> Optional[str]:
        recipients = [str(a).strip() for a in to if str(a or "").strip()]
        if not recipients:
            raise ValueError("No recipients configured")

        if not self._enabled:
            logger.info(
                "Email disabled, not sending %r to %s (%d attachment(s))",
                subject,
                ", ".join(recipients),
                len(attachments),
            )
            return None

        msg = build_message(sender=self._sender, to=recipients, subject=subject, html=html, attachments=attachments)
        resp = self._sesv2().send_email(
            FromEmailAddress=self._sender,
            Destination={"ToAddresses": recipients},
            Content={"Raw": {"Data": msg.as_bytes()}},
        )
        msg_id = (resp or {}).get("MessageId") if isinstance(resp, dict) else None
        logger.info("Sent %r to %d recipient(s), message id %s", subject, len(recipients), msg_id)
        return msg_id
