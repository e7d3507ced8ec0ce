"""
Email Sender
Delivers generated purchase orders over SMTP and records every attempt in
the email history log. Without SMTP credentials sends are simulated.
"""

from __future__ import annotations

import json
import smtplib
import time
from datetime import datetime, timezone
from email.message import EmailMessage
from email.utils import make_msgid
from pathlib import Path
from typing import Callable, Optional

from . import po_config as cfg
from .email_history import EmailHistoryLog
from .exceptions import EmailError, StorageError
from .models import EmailHistoryEntry, EmailTemplate, OutgoingEmail, SendResult
from .po_logger import get_logger

XLSX_MAIN_TYPE = "application"
XLSX_SUB_TYPE = "vnd.openxmlformats-officedocument.spreadsheetml.sheet"

STATUS_SUCCESS = "success"
STATUS_SIMULATION = "success (simulation)"
STATUS_FAILED = "failed"


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

class EmailTemplateStore:
    """Email templates saved as ``<name>.json`` files in one directory."""

    def __init__(self, directory: Optional[str] = None) -> None:
        self.directory = Path(directory or cfg.EMAIL_TEMPLATES_DIR)

    def path_for(self, name: str) -> Path:
        if not name or Path(name).name != name or name in (".", ".."):
            raise ValueError(f"Invalid template name: {name!r}")
        return self.directory / f"{name}.json"

    def save(self, template: EmailTemplate) -> str:
        """Write *template*; returns its name (the template id)."""
        try:
            path = self.path_for(template.name)
            self.directory.mkdir(parents=True, exist_ok=True)
            path.write_text(
                json.dumps(template.to_dict(), ensure_ascii=False, indent=2),
                encoding="utf-8",
            )
        except (OSError, ValueError) as exc:
            raise StorageError(f"Saving email template '{template.name}' failed: {exc}") from exc
        return template.name

    def load(self, name: str) -> Optional[EmailTemplate]:
        """The stored template, or None when missing or unreadable."""
        try:
            path = self.path_for(name)
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return None
        return EmailTemplate.from_dict(data)


def apply_template(message: OutgoingEmail, template: Optional[EmailTemplate]) -> OutgoingEmail:
    """Template subject/body replace the request's when the template sets them."""
    if template is None:
        return message
    message.subject = template.subject or message.subject
    message.body = template.body or message.body
    return message


# ---------------------------------------------------------------------------
# Sender
# ---------------------------------------------------------------------------

class EmailSender:
    """Send purchase order emails and keep the send history."""

    def __init__(
        self,
        history: Optional[EmailHistoryLog] = None,
        smtp_factory: Optional[Callable[..., smtplib.SMTP]] = None,
        clock: Optional[Callable[[], datetime]] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
    ) -> None:
        """
        Args:
            history: Send history log (default: configured history file)
            smtp_factory: Callable returning an SMTP connection (tests inject a fake)
            clock: Returns the current time (UTC)
            user: SMTP login (default: EMAIL_USER)
            password: SMTP password (default: EMAIL_PASS)
        """
        self.history = history or EmailHistoryLog()
        self.smtp_factory = smtp_factory or smtplib.SMTP
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.user = cfg.EMAIL_USER if user is None else user
        self.password = cfg.EMAIL_PASS if password is None else password
        self.logger = get_logger()

    @property
    def simulation(self) -> bool:
        return not (self.user and self.password)

    def send(self, message: OutgoingEmail) -> SendResult:
        """Send *message* now, or acknowledge it when scheduled for later.

        A schedule time in the future returns ``scheduled`` without sending
        or recording anything. Every other attempt lands in the history log.

        Raises:
            EmailError: SMTP delivery failed (the failure is recorded first).
        """
        now = self.clock()
        if message.schedule_time is not None and _as_utc(message.schedule_time) > now:
            when = _as_utc(message.schedule_time).isoformat()
            self.logger.info(f"Email to {message.to} scheduled for {when}", component="Email")
            return SendResult(success=True, scheduled=True, schedule_time=when)

        if not message.body:
            message.body = cfg.DEFAULT_EMAIL_BODY
        sent_at = now.isoformat()

        if self.simulation:
            message_id = f"simulation-{int(time.time() * 1000)}"
            self._record(message, sent_at, message_id, STATUS_SIMULATION)
            return SendResult(
                success=True, message_id=message_id, simulation=True, sent_at=sent_at
            )

        try:
            message_id = self._deliver(message)
        except (smtplib.SMTPException, OSError) as exc:
            self._record(message, sent_at, "", STATUS_FAILED, error=str(exc))
            self.logger.error(f"Email to {message.to} failed: {exc}", component="Email")
            raise EmailError(f"이메일 전송 중 오류가 발생했습니다: {exc}") from exc

        self._record(message, sent_at, message_id, STATUS_SUCCESS)
        return SendResult(success=True, message_id=message_id, sent_at=sent_at)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def build_message(self, message: OutgoingEmail) -> EmailMessage:
        """Plain-text body with an HTML alternative and the workbook attached."""
        mail = EmailMessage()
        mail["From"] = self.user or cfg.EMAIL_FROM_FALLBACK
        mail["To"] = message.to
        mail["Subject"] = message.subject
        mail["Message-ID"] = make_msgid()
        mail.set_content(message.body)
        mail.add_alternative(message.body.replace("\n", "<br>"), subtype="html")
        mail.add_attachment(
            message.attachment,
            maintype=XLSX_MAIN_TYPE,
            subtype=XLSX_SUB_TYPE,
            filename=message.attachment_name,
        )
        return mail

    def _deliver(self, message: OutgoingEmail) -> str:
        mail = self.build_message(message)
        with self.smtp_factory(cfg.SMTP_HOST, cfg.SMTP_PORT, timeout=cfg.SMTP_TIMEOUT) as smtp:
            smtp.starttls()
            smtp.login(self.user, self.password)
            smtp.send_message(mail)
        return mail["Message-ID"]

    def _record(self, message, sent_at, message_id, status, error=""):
        """Append to the history log; a history failure never changes the send outcome."""
        entry = EmailHistoryEntry(
            to=message.to,
            subject=message.subject,
            attachment_name=message.attachment_name,
            sent_at=sent_at,
            message_id=message_id,
            status=status,
            error=error,
        )
        try:
            self.history.append(entry)
        except StorageError as exc:
            self.logger.error(f"History not saved for {message.to}: {exc}", component="History")
        self.logger.log_email_sent(message.to, message.attachment_name, status)
