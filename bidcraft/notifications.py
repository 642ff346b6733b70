"""
Email notifications for BidCraft.

Delivery is best-effort: whatever happens when the mail is handed to the
mailer, an entry is appended to the ``mail_logs`` collection recording the
attempt, and nothing propagates back to the operation that triggered it.
"""
import asyncio
import html as html_lib
import logging
import smtplib
import uuid
from abc import ABC, abstractmethod
from email.message import EmailMessage
from typing import Any, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from .auction import BidAccepted
from .clock import utcnow
from .models import format_amount

logger = logging.getLogger(__name__)


class Mailer(ABC):
    @abstractmethod
    async def send_mail(self, to: str, subject: str, html: Optional[str] = None, text: Optional[str] = None):
        """Deliver one message or raise."""


class NullMailer(Mailer):
    """Used when no SMTP server is configured; every send fails."""

    async def send_mail(self, to, subject, html=None, text=None):
        raise RuntimeError("SMTP is not configured")


class SmtpMailer(Mailer):
    def __init__(self, host: str, port: int, user: str, password: str, sender: str, timeout: float = 10.0):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.sender = sender
        self.timeout = timeout

    def _build_message(self, to, subject, html, text) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content(text or "")
        if html:
            message.add_alternative(html, subtype="html")
        return message

    def _send(self, message: EmailMessage):
        if self.port == 465:
            with smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout) as server:
                server.login(self.user, self.password)
                server.send_message(message)
        else:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                server.starttls()
                server.login(self.user, self.password)
                server.send_message(message)

    async def send_mail(self, to, subject, html=None, text=None):
        message = self._build_message(to, subject, html, text)
        await asyncio.to_thread(self._send, message)


class Notifier:
    def __init__(self, db: AsyncIOMotorDatabase, mailer: Mailer, clock=utcnow):
        self.db = db
        self.mailer = mailer
        self.clock = clock

    async def notify(
        self,
        to: str,
        subject: str,
        html: Optional[str] = None,
        text: Optional[str] = None,
        user_id: Optional[str] = None,
        meta: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Send one mail and record the attempt. Returns whether it was delivered."""
        mail_error = None
        try:
            await self.mailer.send_mail(to, subject, html=html, text=text)
        except Exception as e:
            mail_error = str(e) or e.__class__.__name__
            logger.error("Failed to send mail to %s: %s", to, mail_error)
        else:
            logger.info("Mail sent to %s: %s", to, subject)

        entry = {
            "id": str(uuid.uuid4()),
            "to": to,
            "subject": subject,
            "html": html,
            "text": text,
            "user_id": user_id,
            "meta": {**(meta or {}), "mail_error": mail_error},
            "created_at": self.clock(),
        }
        try:
            await self.db.mail_logs.insert_one(entry)
        except Exception:
            logger.exception("Failed to record mail log for %s", to)

        return mail_error is None

    async def bid_accepted(self, event: BidAccepted) -> bool:
        provider = await self.db.users.find_one({"id": event.provider_id}, {"_id": 0, "email": 1})
        if not provider:
            logger.warning("Winning provider %s of project %s has no account", event.provider_id, event.project_id)
            return False

        title = html_lib.escape(event.title)
        amount = format_amount(event.amount)
        subject = f'Your bid on "{event.title}" was accepted'
        html = (
            f"<p>Hello,</p><p>Your bid of <b>{amount}</b> on <i>{title}</i> has been "
            f"<b>accepted</b> by the buyer.</p><p>Log in to BidCraft to get started.</p>"
        )
        text = f"Your bid of {amount} on {event.title} has been accepted by the buyer."
        return await self.notify(
            provider["email"],
            subject,
            html=html,
            text=text,
            user_id=event.provider_id,
            meta={
                "event": "bid_accepted",
                "project_id": event.project_id,
                "amount": event.amount,
                "accepted_at": event.accepted_at.isoformat(),
            },
        )

    async def account_status_changed(self, user: Dict[str, Any], action: str, reason: Optional[str] = None) -> bool:
        if action == "BAN":
            subject = "Your BidCraft account has been suspended"
            because = f" for the following reason: <i>{html_lib.escape(reason)}</i>" if reason else ""
            html = (
                f"<p>Hello,</p><p>Your account has been <b>suspended</b>{because}.</p>"
                "<p>If you believe this was in error, reply to this email.</p>"
            )
        else:
            subject = "Your BidCraft account has been reinstated"
            html = "<p>Hello,</p><p>Your account has been <b>reinstated</b>. You can log in again.</p>"

        return await self.notify(
            user["email"],
            subject,
            html=html,
            user_id=user["id"],
            meta={"event": "account_status", "action": action, "reason": reason},
        )


def build_mailer(settings) -> Mailer:
    if not settings.smtp_configured:
        logger.warning("Missing SMTP settings; email sending will fail.")
        return NullMailer()
    return SmtpMailer(
        settings.SMTP_HOST,
        settings.SMTP_PORT,
        settings.SMTP_USER,
        settings.SMTP_PASS,
        settings.MAIL_FROM,
    )

