"""
Transport client adapters.

A transport hands out a ``Session`` per connection lifetime and sends text
messages through it. Each adapter is the only place that decides whether a
failed send is local to one message (``MessageRejected``) or means the
session is unusable (``SessionLost``).
"""
import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from .errors import ConnectError, MessageRejected, SessionLost, TransportError

logger = logging.getLogger(__name__)


class Session:
    """One lifetime of a transport connection.

    A session is never repaired: once lost, the supervisor replaces it with a
    new one.
    """

    def __init__(self, client: Any = None, session_id: Optional[str] = None):
        self.id = session_id or uuid.uuid4().hex[:12]
        self.client = client
        self.lost_reason: Optional[str] = None
        self._lost = asyncio.Event()

    @property
    def alive(self) -> bool:
        return not self._lost.is_set()

    def mark_lost(self, reason: str) -> bool:
        """Invalidate the session. Returns True only for the call that invalidated it."""
        if self._lost.is_set():
            return False
        self.lost_reason = reason
        self._lost.set()
        return True

    async def wait_lost(self) -> None:
        await self._lost.wait()

    def __repr__(self) -> str:
        state = "alive" if self.alive else f"lost ({self.lost_reason})"
        return f"<Session {self.id} {state}>"


class Transport(ABC):
    """Capability interface consumed by the dispatcher and the supervisor."""

    name = "transport"

    @abstractmethod
    async def connect(self) -> Session:
        """Open a new session. Raises ConnectError."""

    @abstractmethod
    async def send(self, session: Session, recipient: str, text: str) -> None:
        """Send one message. Raises MessageRejected or SessionLost."""

    async def close(self, session: Session) -> None:
        session.mark_lost("closed")

    @staticmethod
    def ensure_alive(session: Session) -> None:
        if not session.alive:
            raise SessionLost(f"session {session.id} already torn down: {session.lost_reason}")


# Graph API error codes that mean the whole account/session is unusable
# (auth, permissions, account locks, app-level throttling).
SESSION_FATAL_ERROR_CODES = frozenset({
    0,       # AuthException
    3,       # API method not permitted
    4,       # application request limit reached
    10,      # permission denied
    190,     # access token expired or invalid
    200,     # permission error
    80007,   # WhatsApp business account rate limit
    130429,  # throughput limit reached
    131005,  # access denied
    131031,  # business account locked
})


def classify_send_failure(
    recipient: str,
    status_code: int,
    error_code: Optional[int] = None,
    message: Optional[str] = None,
) -> TransportError:
    """Map a failed send response to SessionLost or MessageRejected.

    Auth failures, server errors and account-level error codes are
    session-fatal. Every other client error (bad recipient, re-engagement
    window closed, per-recipient rate limit, ...) only affects this message.
    """
    detail = f"HTTP {status_code}" + (f" code={error_code}" if error_code is not None else "")
    if message:
        detail = f"{detail}: {message}"
    if status_code in (401, 403) or status_code >= 500:
        return SessionLost(detail)
    if error_code in SESSION_FATAL_ERROR_CODES:
        return SessionLost(detail)
    return MessageRejected(recipient, reason=detail)


def _graph_error(response: httpx.Response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        return body["error"]
    return {}


class WhatsAppCloudTransport(Transport):
    """Sends text messages through the WhatsApp Business Cloud API.

    Each session owns its own ``httpx.AsyncClient``; closing the session closes
    the client.
    """

    name = "whatsapp"

    def __init__(
        self,
        api_url: str,
        phone_number_id: str,
        access_token: str,
        timeout: float = 15.0,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.phone_number_id = phone_number_id
        self.access_token = access_token
        self.timeout = timeout
        # Injected by tests (httpx.MockTransport)
        self._http_transport = http_transport

    def _new_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.api_url,
            headers={"Authorization": f"Bearer {self.access_token}"},
            timeout=self.timeout,
            transport=self._http_transport,
        )

    async def connect(self) -> Session:
        client = self._new_client()
        try:
            number = await self._verify(client)
        except BaseException:
            # includes cancellation by the supervisor's connect timeout
            await client.aclose()
            raise

        session = Session(client=client)
        logger.info(f"📲 [Transport] WhatsApp session {session.id} ready for {number}")
        return session

    async def _verify(self, client: httpx.AsyncClient) -> str:
        try:
            r = await client.get(
                f"/{self.phone_number_id}",
                params={"fields": "display_phone_number,verified_name"},
            )
        except httpx.HTTPError as e:
            raise ConnectError(f"WhatsApp API unreachable: {e!r}") from e
        if not r.is_success:
            err = _graph_error(r)
            raise ConnectError(f"WhatsApp API refused session: HTTP {r.status_code} {err.get('message', '')}".strip())
        try:
            body = r.json()
        except ValueError as e:
            raise ConnectError(f"WhatsApp API returned a non-JSON body: HTTP {r.status_code}") from e
        if not isinstance(body, dict):
            raise ConnectError("WhatsApp API returned an unexpected body")
        return body.get("display_phone_number", self.phone_number_id)

    async def send(self, session: Session, recipient: str, text: str) -> None:
        self.ensure_alive(session)
        client: httpx.AsyncClient = session.client
        if client is None or client.is_closed:
            raise SessionLost(f"session {session.id} has no open client")

        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": recipient,
            "type": "text",
            "text": {"preview_url": False, "body": text},
        }
        try:
            r = await client.post(f"/{self.phone_number_id}/messages", json=payload)
        except httpx.TimeoutException as e:
            # slow for this one message; the session may still be fine
            raise MessageRejected(recipient, reason=f"timeout: {e!r}") from e
        except httpx.TransportError as e:
            raise SessionLost(f"transport error: {e!r}") from e
        except RuntimeError as e:
            # httpx refuses requests on a client closed mid-flight
            if client.is_closed:
                raise SessionLost(f"client closed: {e}") from e
            raise

        if r.is_success:
            return
        err = _graph_error(r)
        raise classify_send_failure(recipient, r.status_code, err.get("code"), err.get("message"))

    async def close(self, session: Session) -> None:
        await super().close(session)
        if session.client is not None and not session.client.is_closed:
            await session.client.aclose()


class LogTransport(Transport):
    """Development transport: logs every message instead of sending it."""

    name = "log"

    async def connect(self) -> Session:
        session = Session()
        logger.info(f"📝 [Transport] Log session {session.id} ready")
        return session

    async def send(self, session: Session, recipient: str, text: str) -> None:
        self.ensure_alive(session)
        logger.info(f"📝 [Transport] to={recipient} | {text!r}")


def build_transport(settings) -> Transport:
    if settings.TRANSPORT == "log":
        return LogTransport()
    return WhatsAppCloudTransport(
        api_url=settings.WHATSAPP_API_URL,
        phone_number_id=settings.WHATSAPP_PHONE_NUMBER_ID,
        access_token=settings.WHATSAPP_ACCESS_TOKEN,
        timeout=settings.SEND_TIMEOUT_SECONDS,
    )
