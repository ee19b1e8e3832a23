"""
core/notifier.py -- Outbound email delivery (the Notifier Gateway).

Two implementations share one duck-typed interface, send(to, subject, body, html=None):

  SmtpNotifier -- STARTTLS + login against a configured SMTP relay.
  LogNotifier  -- writes the message to the log instead of sending it.
                  Only built by the app when DEBUG=true and no SMTP host is
                  configured, so local development can read OTP codes.

Both raise NotifierError when a message cannot be handed off. Callers decide
what that means for state they already persisted; this module never retries.

Layer rule: core/ is the kernel. No imports from api/, auth/, or media/.
"""

from __future__ import annotations

import logging
import smtplib
import ssl
from email.message import EmailMessage

logger = logging.getLogger("memberdesk.notifier")


class NotifierError(Exception):
    """A message could not be delivered to the mail relay."""


class SmtpNotifier:
    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        sender: str,
        sender_name: str = "MemberDesk",
        timeout: float = 15.0,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender or username
        self.sender_name = sender_name
        self.timeout = timeout

    def _build_message(self, to: str, subject: str, body: str, html: str | None) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = f"{self.sender_name} <{self.sender}>"
        msg["To"] = to
        msg.set_content(body)
        if html:
            msg.add_alternative(html, subtype="html")
        return msg

    def send(self, to: str, subject: str, body: str, html: str | None = None) -> None:
        msg = self._build_message(to, subject, body, html)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as conn:
                conn.starttls(context=ssl.create_default_context())
                if self.username and self.password:
                    conn.login(self.username, self.password)
                conn.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("SMTP delivery of %r to %s failed: %s", subject, to, exc)
            raise NotifierError(str(exc)) from exc
        logger.info("Sent %r to %s", subject, to)


class LogNotifier:
    """Development notifier: logs the full message body."""

    def send(self, to: str, subject: str, body: str, html: str | None = None) -> None:
        logger.warning("Email delivery not configured; message for %s\nSubject: %s\n%s", to, subject, body)
