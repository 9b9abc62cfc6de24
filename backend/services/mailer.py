"""
Mail Transport
==============
Outbound SMTP mail with retry and port fallback.

Supports:
- STARTTLS on 587, SSL on 465 as the fallback channel
- Attachments from disk
- Log-only delivery when no credentials are configured (local dev, tests)
"""

import json
import os
import smtplib
import time
from dataclasses import dataclass, field
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Callable, List, Optional

from core.errors import TransientIOError
from core.logger import logger


@dataclass
class MailAttachment:
    filename: str
    path: str


@dataclass
class MailMessage:
    to: str
    subject: str
    text: str
    bcc: List[str] = field(default_factory=list)
    attachments: List[MailAttachment] = field(default_factory=list)

    @property
    def recipients(self) -> List[str]:
        seen, out = set(), []
        for address in [self.to, *self.bcc]:
            if address and address not in seen:
                seen.add(address)
                out.append(address)
        return out


class Mailer:
    """
    SMTP sender.

    ``send`` retries ``attempts`` times, sleeping ``retry_delay * attempt``
    seconds between tries, and raises TransientIOError when every attempt
    failed. ``safe_send`` logs that failure instead of raising.
    """

    PRIMARY_PORT = 587
    FALLBACK_PORT = 465

    def __init__(
        self,
        user: str = "",
        password: str = "",
        host: str = "smtp.gmail.com",
        attempts: int = 3,
        retry_delay: float = 3.0,
        sleep: Callable[[float], None] = time.sleep,
        timeout: float = 30.0,
    ):
        self.user = user
        self.password = password
        self.host = host
        self.attempts = max(1, attempts)
        self.retry_delay = retry_delay
        self.sleep = sleep
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings, sleep: Callable[[float], None] = time.sleep) -> "Mailer":
        return cls(
            user=settings.email_user,
            password=settings.email_pass,
            host=settings.smtp_host,
            attempts=settings.mail_attempts,
            retry_delay=settings.mail_retry_delay_seconds,
            sleep=sleep,
        )

    @property
    def configured(self) -> bool:
        return bool(self.user and self.password)

    def _build(self, message: MailMessage) -> MIMEMultipart:
        msg = MIMEMultipart()
        msg["From"] = self.user
        msg["To"] = message.to
        msg["Subject"] = message.subject
        msg.attach(MIMEText(message.text, "plain", "utf-8"))

        for attachment in message.attachments:
            if not attachment.path or not os.path.exists(attachment.path):
                logger.warning(f"MAIL_ATTACHMENT_MISSING path={attachment.path}")
                continue
            with open(attachment.path, "rb") as f:
                part = MIMEApplication(f.read(), _subtype="pdf")
            part.add_header("Content-Disposition", "attachment", filename=attachment.filename)
            msg.attach(part)
        return msg

    def _deliver(self, msg: MIMEMultipart, recipients: List[str]) -> None:
        try:
            with smtplib.SMTP(self.host, self.PRIMARY_PORT, timeout=self.timeout) as server:
                server.starttls()
                server.login(self.user, self.password)
                server.sendmail(self.user, recipients, msg.as_string())
            return
        except (smtplib.SMTPException, OSError) as e:
            logger.warning(f"MAIL_587_FAIL reason={e!r}, trying {self.FALLBACK_PORT}")

        with smtplib.SMTP_SSL(self.host, self.FALLBACK_PORT, timeout=self.timeout) as server:
            server.login(self.user, self.password)
            server.sendmail(self.user, recipients, msg.as_string())

    def send(self, message: MailMessage) -> None:
        """Deliver ``message`` or raise TransientIOError after the last attempt."""
        if not self.configured:
            logger.info("MAIL_LOG_ONLY " + json.dumps({
                "to": message.to,
                "bcc": message.bcc,
                "subject": message.subject,
                "attachments": [a.filename for a in message.attachments],
            }))
            return

        msg = self._build(message)
        recipients = message.recipients
        for attempt in range(1, self.attempts + 1):
            try:
                self._deliver(msg, recipients)
                logger.info(f"MAIL_SENT to={message.to} subject={message.subject!r} attempt={attempt}")
                return
            except (smtplib.SMTPException, OSError) as e:
                logger.error(f"MAIL_ATTEMPT_FAIL_{attempt} reason={e!r}")
                if attempt == self.attempts:
                    raise TransientIOError(f"Mail to {message.to} failed: {e}")
                delay = self.retry_delay * attempt
                logger.info(f"MAIL_RETRY_SLEEP seconds={delay}")
                self.sleep(delay)

    def safe_send(self, message: MailMessage) -> bool:
        """Send, logging instead of raising on transport failure."""
        try:
            self.send(message)
            return True
        except TransientIOError as e:
            logger.error(f"MAIL_SEND_FAILED to={message.to} subject={message.subject!r} detail={e.message}")
            return False


def bcc_list(*addresses: Optional[str]) -> List[str]:
    return [a for a in addresses if a]
