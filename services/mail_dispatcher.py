# services/mail_dispatcher.py
"""
Outbound mail for form submissions

- PooledSMTPTransport keeps a bounded pool of authenticated aiosmtplib
  connections, recycles them after a number of messages and caps the
  outbound message rate
- MailDispatcher runs every send on one background event loop so pooled
  connections outlive individual requests, and applies the delivery policy:
  the administrator notification must succeed, the submitter confirmation
  is best effort
"""

import asyncio
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from collections import deque
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from email.header import Header
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, formatdate
from typing import Any, Deque, List, Mapping, Optional

import aiosmtplib

from core.errors import ConfigurationError, DispatchError, FormServiceError

logger = logging.getLogger(__name__)

# host, port, implicit TLS
WELL_KNOWN_SERVICES = {
    'gmail': ('smtp.gmail.com', 465, True),
    'outlook': ('smtp-mail.outlook.com', 587, False),
    'hotmail': ('smtp-mail.outlook.com', 587, False),
    'office365': ('smtp.office365.com', 587, False),
    'yahoo': ('smtp.mail.yahoo.com', 465, True),
    'zoho': ('smtp.zoho.com', 465, True),
    'sendgrid': ('smtp.sendgrid.net', 587, False),
}


@dataclass(frozen=True)
class MailSettings:
    """SMTP and envelope settings resolved from application config"""
    user: Optional[str]
    password: Optional[str]
    host: Optional[str]
    port: int
    secure: bool
    admin_email: Optional[str] = None
    from_name: Optional[str] = None
    max_connections: int = 5
    max_messages: int = 100
    rate_limit: int = 10
    rate_delta: float = 1.0
    send_timeout: float = 30.0

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> 'MailSettings':
        service = (config.get('EMAIL_SERVICE') or 'gmail').lower()
        host, port, secure = WELL_KNOWN_SERVICES.get(service, (None, 587, False))
        host = config.get('EMAIL_HOST') or host
        if config.get('EMAIL_PORT'):
            port = int(config['EMAIL_PORT'])
        if config.get('EMAIL_SECURE') is not None:
            secure = bool(config['EMAIL_SECURE'])

        return cls(
            user=config.get('EMAIL_USER'),
            password=config.get('EMAIL_PASS'),
            host=host,
            port=port,
            secure=secure,
            admin_email=config.get('ADMIN_EMAIL'),
            from_name=config.get('EMAIL_FROM_NAME') or config.get('BRAND_NAME'),
            max_connections=int(config.get('EMAIL_POOL_MAX_CONNECTIONS', 5)),
            max_messages=int(config.get('EMAIL_POOL_MAX_MESSAGES', 100)),
            rate_limit=int(config.get('EMAIL_RATE_LIMIT', 10)),
            rate_delta=float(config.get('EMAIL_RATE_DELTA', 1.0)),
            send_timeout=float(config.get('EMAIL_SEND_TIMEOUT', 30.0)),
        )

    def require_credentials(self) -> None:
        missing = [name for name, value in (('EMAIL_USER', self.user), ('EMAIL_PASS', self.password))
                   if not value]
        if missing:
            raise ConfigurationError(f"Missing mail credentials: {', '.join(missing)}")
        if not self.host:
            raise ConfigurationError("Unknown EMAIL_SERVICE and no EMAIL_HOST set")

    @property
    def sender(self) -> str:
        if not self.user:
            raise ConfigurationError("EMAIL_USER is required to send mail")
        return formataddr((self.from_name or '', self.user), charset='utf-8')

    @property
    def admin_recipient(self) -> str:
        recipient = self.admin_email or self.user
        if not recipient:
            raise ConfigurationError("ADMIN_EMAIL or EMAIL_USER must be set")
        return recipient


@dataclass(frozen=True)
class OutgoingEmail:
    to: str
    subject: str
    html: str
    text: Optional[str] = None
    reply_to: Optional[str] = None
    sender: Optional[str] = None

    def to_message(self, settings: MailSettings) -> MIMEMultipart:
        sender = self.sender or settings.sender
        msg = MIMEMultipart('alternative')
        msg['Subject'] = Header(self.subject, 'utf-8')
        msg['From'] = sender
        msg['To'] = self.to
        msg['Date'] = formatdate(localtime=True)
        msg['Message-ID'] = f"<{uuid.uuid4()}@{sender.rsplit('@', 1)[-1].rstrip('>') or 'localhost'}>"
        if self.reply_to:
            msg['Reply-To'] = self.reply_to
        msg['X-Mailer'] = 'formrelay'

        if self.text:
            msg.attach(MIMEText(self.text, 'plain', 'utf-8'))
        msg.attach(MIMEText(self.html, 'html', 'utf-8'))
        return msg


@dataclass(frozen=True)
class DeliveryReport:
    """Outcome of sending one submission's notification pair"""
    admin_sent: bool
    user_sent: bool
    user_error: Optional[str] = None


class MailTransport(ABC):
    """Async message sink used by the dispatcher"""

    @abstractmethod
    async def send(self, message: MIMEMultipart) -> None:
        ...

    async def close(self) -> None:
        return None


class UnconfiguredTransport(MailTransport):
    """Stands in when credentials are missing and mail is optional"""

    def __init__(self, error: ConfigurationError):
        self.error = error

    async def send(self, message: MIMEMultipart) -> None:
        raise self.error


class _PooledConnection:
    def __init__(self, client: aiosmtplib.SMTP):
        self.client = client
        self.sent = 0


class PooledSMTPTransport(MailTransport):
    """
    aiosmtplib connection pool

    Args:
        settings: resolved mail settings; credentials are mandatory

    Raises:
        ConfigurationError: when EMAIL_USER or EMAIL_PASS is missing
    """

    def __init__(self, settings: MailSettings):
        settings.require_credentials()
        self.settings = settings
        self._idle: List[_PooledConnection] = []
        self._slots: Optional[asyncio.Semaphore] = None
        self._throttle_lock: Optional[asyncio.Lock] = None
        self._recent_sends: Deque[float] = deque()

    def _ensure_primitives(self) -> None:
        if self._slots is None:
            self._slots = asyncio.Semaphore(self.settings.max_connections)
            self._throttle_lock = asyncio.Lock()

    async def send(self, message: MIMEMultipart) -> None:
        self._ensure_primitives()
        async with self._slots:
            await self._throttle()
            connection = await self._acquire()
            try:
                await connection.client.send_message(message)
            except (aiosmtplib.SMTPException, OSError) as exc:
                await self._discard(connection)
                raise DispatchError(f"SMTP delivery to {message['To']} failed: {exc}") from exc
            except BaseException:
                # Cancelled mid-transaction: the session state is unknown
                connection.client.close()
                raise
            connection.sent += 1
            await self._release(connection)

    async def _throttle(self) -> None:
        """Allow at most rate_limit messages per rate_delta seconds"""
        loop = asyncio.get_running_loop()
        async with self._throttle_lock:
            now = loop.time()
            while self._recent_sends and now - self._recent_sends[0] >= self.settings.rate_delta:
                self._recent_sends.popleft()
            if len(self._recent_sends) >= self.settings.rate_limit:
                wait = self.settings.rate_delta - (now - self._recent_sends[0])
                if wait > 0:
                    await asyncio.sleep(wait)
                self._recent_sends.popleft()
            self._recent_sends.append(loop.time())

    async def _acquire(self) -> _PooledConnection:
        while self._idle:
            connection = self._idle.pop()
            if connection.client.is_connected:
                return connection

        client = aiosmtplib.SMTP(
            hostname=self.settings.host,
            port=self.settings.port,
            use_tls=self.settings.secure,
            timeout=self.settings.send_timeout,
        )
        try:
            await client.connect()
            await client.login(self.settings.user, self.settings.password)
        except aiosmtplib.SMTPAuthenticationError as exc:
            await self._quit(client)
            raise ConfigurationError(f"SMTP authentication failed for {self.settings.user}: {exc}") from exc
        except (aiosmtplib.SMTPException, OSError) as exc:
            await self._quit(client)
            raise DispatchError(
                f"Cannot connect to {self.settings.host}:{self.settings.port}: {exc}"
            ) from exc
        except BaseException:
            client.close()
            raise

        logger.debug(f"Opened SMTP connection to {self.settings.host}:{self.settings.port}")
        return _PooledConnection(client)

    async def _release(self, connection: _PooledConnection) -> None:
        if connection.sent >= self.settings.max_messages:
            await self._discard(connection)
        else:
            self._idle.append(connection)

    async def _discard(self, connection: _PooledConnection) -> None:
        await self._quit(connection.client)

    @staticmethod
    async def _quit(client: aiosmtplib.SMTP) -> None:
        if not client.is_connected:
            return
        try:
            await client.quit()
        except (aiosmtplib.SMTPException, OSError):
            client.close()

    async def close(self) -> None:
        idle, self._idle = self._idle, []
        for connection in idle:
            await self._discard(connection)

    @property
    def idle_connections(self) -> int:
        return len(self._idle)


def build_transport(settings: MailSettings, required: bool = False) -> MailTransport:
    """Create the SMTP pool, or a placeholder that fails every send when mail is optional"""
    try:
        return PooledSMTPTransport(settings)
    except ConfigurationError as exc:
        if required:
            raise
        logger.error(f"Mail transport not configured, submissions will be stored but not mailed: {exc}")
        return UnconfiguredTransport(exc)


class MailDispatcher:
    """Synchronous facade over the mail event loop thread"""

    def __init__(self, transport: MailTransport, settings: MailSettings):
        self.transport = transport
        self.settings = settings
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    def start(self) -> None:
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._loop = asyncio.new_event_loop()
            self._thread = threading.Thread(target=self._run_loop, name='mail-dispatcher', daemon=True)
            self._thread.start()
            logger.debug("Mail dispatcher loop started")

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run_loop(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._loop.run_forever()

    def stop(self) -> None:
        with self._lock:
            if self._thread is None or not self._thread.is_alive():
                return
            loop, thread = self._loop, self._thread
            self._thread = None

        closing = asyncio.run_coroutine_threadsafe(self.transport.close(), loop)
        try:
            closing.result(timeout=5)
        except Exception as e:
            logger.warning(f"Closing mail transport failed: {str(e)}")
        loop.call_soon_threadsafe(loop.stop)
        thread.join(timeout=5)
        loop.close()
        logger.debug("Mail dispatcher loop stopped")

    def _run(self, coro, timeout: float):
        self.start()
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        try:
            return future.result(timeout)
        except FutureTimeoutError:
            future.cancel()
            raise DispatchError(f"Mail delivery did not finish within {timeout:.0f}s")

    async def _send_one(self, email: OutgoingEmail) -> None:
        try:
            message = email.to_message(self.settings)
            await asyncio.wait_for(self.transport.send(message), self.settings.send_timeout)
        except FormServiceError:
            raise
        except asyncio.TimeoutError as exc:
            raise DispatchError(f"Sending to {email.to} timed out") from exc
        except Exception as exc:
            raise DispatchError(f"Sending to {email.to} failed: {exc}") from exc

    def send(self, to: str, subject: str, html: str,
             text: Optional[str] = None, sender: Optional[str] = None) -> bool:
        """Send a single message; returns False and logs when delivery fails"""
        email = OutgoingEmail(to=to, subject=subject, html=html, text=text, sender=sender)
        try:
            self._run(self._send_one(email), timeout=self.settings.send_timeout + 5)
        except FormServiceError as e:
            logger.error(f"Email to {to} failed: {str(e)}")
            return False
        logger.info(f"Email sent to {to}: {subject}")
        return True

    async def _deliver(self, admin: OutgoingEmail, user: OutgoingEmail) -> DeliveryReport:
        admin_result, user_result = await asyncio.gather(
            self._send_one(admin), self._send_one(user), return_exceptions=True
        )

        user_error = None
        if isinstance(user_result, BaseException):
            user_error = str(user_result)
            logger.warning(f"Confirmation email to {user.to} failed: {user_error}")

        if isinstance(admin_result, BaseException):
            if isinstance(admin_result, FormServiceError):
                raise admin_result
            raise DispatchError(f"Admin notification failed: {admin_result}") from admin_result

        return DeliveryReport(admin_sent=True, user_sent=user_error is None, user_error=user_error)

    def deliver(self, admin: OutgoingEmail, user: OutgoingEmail) -> DeliveryReport:
        """
        Send the admin notification and user confirmation concurrently

        Raises:
            ConfigurationError: mail is not configured
            DispatchError: the admin notification could not be sent
        """
        return self._run(self._deliver(admin, user), timeout=self.settings.send_timeout + 5)

    def admin_email(self, subject: str, html: str, text: Optional[str] = None,
                    reply_to: Optional[str] = None) -> OutgoingEmail:
        return OutgoingEmail(to=self.settings.admin_recipient, subject=subject,
                             html=html, text=text, reply_to=reply_to)
