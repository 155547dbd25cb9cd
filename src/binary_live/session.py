"""
Live API session manager.

Owns one long-lived transport and provides, on top of it:

- request/response correlation through ``req_id`` and asyncio futures
- buffering of sends and deferred actions while the transport is not open
- unconditional reconnect on close, followed by subscription replay
- re-publication of every server push on a per-``msg_type`` channel
"""

import asyncio
import functools
import itertools
import json
import logging
import sys
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Deque, Dict, Optional, Set

from .calls import CALLS, build_payload, get_call
from .clients.websocket_transport import ReadyState, WebSocketTransport
from .config.settings import DEFAULT_API_URL, LiveApiSettings
from .errors import LiveError
from .events import LiveEvents
from .history import get_data_for_contract
from .stateful import SubscriptionState

logger = logging.getLogger(__name__)

# Expected outcomes of replaying subscriptions, not caller bugs
IGNORABLE_ERROR_MESSAGES = (
    "You are already subscribed to",
    "Input validation failed: forget",
)


def should_ignore_error(error: Dict[str, Any]) -> bool:
    message = error.get("message") or ""
    return any(fragment in message for fragment in IGNORABLE_ERROR_MESSAGES)


def terminate_on_transport_error(error: BaseException):
    """Default fatal policy: report and exit so a process manager can respawn."""
    logger.critical(f"Transport error, terminating process: {error}")
    sys.exit(1)


def log_transport_error(error: BaseException):
    """Non-terminating policy: report only, the following close reconnects."""
    logger.error(f"Transport error: {error}")


class Status(str, Enum):
    UNKNOWN = "unknown"
    CONNECTED = "connected"


@dataclass
class PendingRequest:
    """A sent request waiting for the response carrying its ``req_id``."""
    req_id: str
    future: asyncio.Future
    timer: Optional[asyncio.TimerHandle] = None

    def cancel_timer(self):
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None


class LiveApi:
    """
    Persistent session against the streaming trading API.

    Every registry call is reachable through ``invoke(name, ...)`` or as an
    attribute (``api.subscribe_to_tick("R_100")``). Calls return an awaitable
    future resolved with the full response frame, or failing with
    ``LiveError``.

    Futures are created on the running event loop, so calls must be made from
    inside it.
    """

    Status = Status

    def __init__(
        self,
        api_url: str = DEFAULT_API_URL,
        language: str = "en",
        websocket: Optional[Callable[[str], Any]] = None,
        connection: Optional[Any] = None,
        on_fatal_error: Optional[Callable[[BaseException], Any]] = None,
        request_timeout: Optional[float] = None,
    ):
        self.api_url = api_url
        self.language = language
        self.request_timeout = request_timeout
        self.on_fatal_error = on_fatal_error or terminate_on_transport_error
        self._transport_factory = websocket or WebSocketTransport

        self.status = Status.UNKNOWN
        self.socket: Optional[Any] = None

        self.buffered_sends: Deque[Dict[str, Any]] = deque()
        self.buffered_executes: Deque[Callable[[], Any]] = deque()
        self.unresolved: Dict[str, PendingRequest] = {}

        self.state = SubscriptionState()
        self.events = LiveEvents()
        self.on_auth: Optional[Callable[[], None]] = None

        self._req_ids = itertools.count(1)
        self._replay_ids: Set[str] = set()

        self.stats = {
            'messages_received': 0,
            'decode_errors': 0,
            'requests_sent': 0,
            'requests_buffered': 0,
            'last_message_time': None,
            'connection_count': 0,
            'reconnect_count': 0,
        }

        self.connect(connection)

    @classmethod
    def from_settings(cls, settings: LiveApiSettings, **kwargs) -> "LiveApi":
        """Build a session from loaded settings; keyword arguments override."""
        if not settings.connection.terminate_on_error:
            kwargs.setdefault('on_fatal_error', log_transport_error)

        kwargs.setdefault('api_url', settings.connection.api_url)
        kwargs.setdefault('language', settings.connection.language)
        kwargs.setdefault('request_timeout', settings.request.timeout_seconds)
        return cls(**kwargs)

    def __getattr__(self, name: str):
        # Only reached for attributes not found normally
        if not name.startswith('_') and name in CALLS:
            return functools.partial(self.invoke, name)
        raise AttributeError(f"{type(self).__name__!r} object has no attribute {name!r}")

    # Connection lifecycle

    def connect(self, connection: Optional[Any] = None):
        """Install a transport (a fresh one unless ``connection`` is given)."""
        if connection is not None:
            self.socket = connection
        else:
            self.socket = self._transport_factory(f"{self.api_url}?l={self.language}")

        self.socket.on_open = self._on_open
        self.socket.on_close = self._on_close
        self.socket.on_error = self._on_error
        self.socket.on_message = self._on_message

        self.stats['connection_count'] += 1

    def disconnect(self):
        """Close on purpose: forget the token and do not reconnect."""
        self.state.token = ""
        self.socket.on_close = None
        self.socket.close()
        self.status = Status.UNKNOWN
        logger.info("Disconnected from live API")

    def change_language(self, language: str):
        """Restart the session with a new language tag; same tag is a no-op."""
        if language == self.language:
            return

        logger.info(f"Changing language {self.language} -> {language}, restarting session")
        self.socket.on_close = None
        self.socket.close()
        self.language = language
        self.connect()
        self.resubscribe()

    def is_ready(self) -> bool:
        return self.socket is not None and self.socket.ready_state == ReadyState.OPEN

    def _on_open(self):
        self.status = Status.CONNECTED
        logger.info(
            f"Connection open, flushing {len(self.buffered_sends)} sends "
            f"and {len(self.buffered_executes)} executes"
        )
        self._send_buffered_sends()
        self._execute_buffered_executes()

    def _on_close(self):
        self.status = Status.UNKNOWN
        self.stats['reconnect_count'] += 1
        logger.warning("Connection closed, reconnecting")
        self.connect()
        self.resubscribe()

    def _on_error(self, error: BaseException):
        self.status = Status.UNKNOWN
        self.on_fatal_error(error)

    # Buffering

    def _send_buffered_sends(self):
        while self.buffered_sends:
            self.socket.send(json.dumps(self.buffered_sends.popleft()))
            self.stats['requests_sent'] += 1

    def _execute_buffered_executes(self):
        while self.buffered_executes:
            self.buffered_executes.popleft()()

    def execute(self, action: Callable[[], Any]):
        """Run ``action`` now if the transport is open, otherwise on next open."""
        if self.is_ready():
            action()
        else:
            self.buffered_executes.append(action)

    # Request/response correlation

    def send(self, payload: Dict[str, Any]) -> Optional[asyncio.Future]:
        """Tag ``payload`` with a fresh ``req_id`` and send it."""
        return self.send_raw({'req_id': next(self._req_ids), **payload})

    def send_raw(self, payload: Dict[str, Any]) -> Optional[asyncio.Future]:
        """
        Send ``payload`` as is, or buffer it until the transport opens.

        Returns a future when the payload carries a ``req_id``, else None.
        """
        if self.is_ready():
            self._send_buffered_sends()
            self.socket.send(json.dumps(payload))
            self.stats['requests_sent'] += 1
        else:
            self.buffered_sends.append(payload)
            self.stats['requests_buffered'] += 1

        if payload.get('req_id'):
            return self._generate_future(payload)
        return None

    def invoke(self, name: str, *args, **kwargs) -> Optional[asyncio.Future]:
        """Build the payload for a registry call, record its intent, send it."""
        call = get_call(name)
        payload = call.builder(*args, **kwargs)
        if call.recorder is not None:
            call.recorder(self.state, *args, **kwargs)
        return self.send(payload)

    def _generate_future(self, payload: Dict[str, Any]) -> asyncio.Future:
        loop = asyncio.get_running_loop()
        req_id = str(payload['req_id'])
        pending = PendingRequest(req_id=req_id, future=loop.create_future())

        if req_id in self.unresolved:
            logger.warning("Duplicate req_id, replacing pending request", extra={'req_id': req_id})
            self.unresolved[req_id].cancel_timer()
        self.unresolved[req_id] = pending

        if self.request_timeout is not None:
            pending.timer = loop.call_later(self.request_timeout, self._expire, pending)

        pending.future.add_done_callback(lambda _: self._discard(pending))
        return pending.future

    def _discard(self, pending: PendingRequest):
        # Drops caller-cancelled requests; settled ones are already gone
        pending.cancel_timer()
        if self.unresolved.get(pending.req_id) is pending:
            del self.unresolved[pending.req_id]

    def _expire(self, pending: PendingRequest):
        pending.timer = None
        if self.unresolved.get(pending.req_id) is not pending:
            return
        del self.unresolved[pending.req_id]
        if not pending.future.done():
            logger.warning(
                f"Request timed out after {self.request_timeout}s", extra={'req_id': pending.req_id}
            )
            pending.future.set_exception(LiveError.timeout(pending.req_id, self.request_timeout))

    def _resolve_pending(self, message: Dict[str, Any]):
        req_id = message.get('req_id')
        if not req_id:
            return

        pending = self.unresolved.pop(str(req_id), None)
        if pending is None:
            return
        pending.cancel_timer()
        if pending.future.done():
            return

        error = message.get('error')
        if not error:
            pending.future.set_result(message)
        elif should_ignore_error(error):
            logger.debug(
                f"Ignoring error: {error.get('message')}",
                extra={'req_id': req_id, 'msg_type': message.get('msg_type')},
            )
        else:
            pending.future.set_exception(LiveError(error))

    # Incoming frames

    def _on_message(self, data: Any):
        self.stats['messages_received'] += 1

        try:
            message = json.loads(data)
        except (TypeError, ValueError) as e:
            self.stats['decode_errors'] += 1
            logger.warning(f"Failed to decode frame: {e}")
            return

        if not isinstance(message, dict):
            self.stats['decode_errors'] += 1
            logger.warning(f"Unexpected frame of type {type(message).__name__}")
            return

        self.stats['last_message_time'] = time.time()

        if not message.get('error'):
            msg_type = message.get('msg_type')
            if msg_type == 'authorize' and self.on_auth:
                self.on_auth()
            if msg_type:
                self.events.emit(msg_type, message)
        else:
            self.events.emit('error', message)

        self._resolve_pending(message)

    # Subscription replay

    def resubscribe(self):
        """
        Reissue what the session was subscribed to.

        Authorization, ticks and proposals go out now. Balance, transaction
        and portfolio feeds need an authorized connection and go out once the
        next successful ``authorize`` response arrives.
        """
        self._drop_stale_replay()
        state = self.state.snapshot()

        if state.token:
            self._replay('authorize', state.token)

        for symbol in state.ticks:
            self._replay('subscribe_to_tick', symbol)

        for proposal in state.proposals:
            self._replay('subscribe_to_price_for_contract_proposal', proposal)

        def after_auth():
            self.on_auth = None

            if state.balance:
                self._replay('subscribe_to_balance')

            if state.transactions:
                self._replay('subscribe_to_transactions')

            if state.portfolio:
                self._replay('subscribe_to_all_open_contracts')

        self.on_auth = after_auth

        logger.info(
            f"Resubscribing: token={'yes' if state.token else 'no'}, "
            f"ticks={len(state.ticks)}, proposals={len(state.proposals)}"
        )

    def _replay(self, name: str, *args):
        # Replay sends without recording, so the state is never touched
        payload = {'req_id': next(self._req_ids), **build_payload(name, *args)}
        req_id = str(payload['req_id'])
        self._replay_ids.add(req_id)

        future = self.send_raw(payload)
        future.add_done_callback(lambda _: self._replay_ids.discard(req_id))
        future.add_done_callback(functools.partial(log_failed_call, f"replay of {name}"))

    def _drop_stale_replay(self):
        """Forget replay frames and requests left over from an earlier attempt."""
        if not self._replay_ids:
            return

        stale = set(self._replay_ids)
        self._replay_ids.clear()

        kept = [p for p in self.buffered_sends if str(p.get('req_id')) not in stale]
        dropped = len(self.buffered_sends) - len(kept)
        self.buffered_sends = deque(kept)

        for req_id in stale:
            pending = self.unresolved.pop(req_id, None)
            if pending is not None:
                pending.cancel_timer()
                pending.future.cancel()

        logger.debug(f"Dropped {dropped} unsent replay frames from a previous attempt")

    # High level reads

    async def get_data_for_contract(
        self,
        contract_id: int,
        duration_type: str = 'all',
        duration_count: Optional[int] = None,
        style: str = 'ticks',
        clock: Callable[[], float] = time.time,
    ):
        """Price history covering a contract's lifetime, see ``binary_live.history``."""
        return await get_data_for_contract(
            self, contract_id, duration_type, duration_count, style, clock=clock
        )

    # Monitoring

    def get_stats(self) -> Dict[str, Any]:
        last_message_age = None
        if self.stats['last_message_time']:
            last_message_age = time.time() - self.stats['last_message_time']

        return {
            **self.stats,
            'last_message_age_seconds': last_message_age,
            'status': self.status.value,
            'is_connected': self.is_ready(),
            'pending_requests': len(self.unresolved),
            'buffered_sends': len(self.buffered_sends),
            'buffered_executes': len(self.buffered_executes),
        }

    async def health_check(self) -> Dict[str, Any]:
        """Perform health check on the session."""
        stats = self.get_stats()
        issues = []

        if not stats['is_connected']:
            issues.append('Transport not open')

        if stats['messages_received'] > 0:
            error_rate = stats['decode_errors'] / stats['messages_received']
            if error_rate > 0.05:
                issues.append(f"High decode error rate: {error_rate:.2%}")

        return {
            'status': 'healthy' if not issues else 'unhealthy',
            'issues': issues,
            'stats': stats
        }


def log_failed_call(description: str, future: asyncio.Future):
    """Done callback for fire-and-forget calls: report a rejection instead of dropping it."""
    if future.cancelled():
        return
    error = future.exception()
    if error is not None:
        logger.warning(f"{description} failed: {error}")
