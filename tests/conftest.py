"""Pytest configuration and shared fixtures."""

import asyncio
import json
from typing import Any, Dict, List, Optional
from unittest.mock import Mock

import pytest

from binary_live.clients.websocket_transport import ReadyState
from binary_live.session import LiveApi


class FakeTransport:
    """In-memory transport with the same hooks as WebSocketTransport."""

    def __init__(self, url: Optional[str] = None):
        self.url = url
        self.ready_state = ReadyState.CONNECTING
        self.sent: List[Dict[str, Any]] = []
        self.closed = False

        self.on_open = None
        self.on_close = None
        self.on_error = None
        self.on_message = None

    def send(self, data: str):
        self.sent.append(json.loads(data))

    def close(self):
        self.closed = True
        self.ready_state = ReadyState.CLOSED
        if self.on_close:
            self.on_close()

    # Test drivers

    def open(self):
        self.ready_state = ReadyState.OPEN
        if self.on_open:
            self.on_open()

    def drop(self):
        """Server-side close."""
        self.ready_state = ReadyState.CLOSED
        if self.on_close:
            self.on_close()

    def fail(self, error: BaseException):
        if self.on_error:
            self.on_error(error)

    def receive(self, message: Any):
        data = message if isinstance(message, (str, bytes)) else json.dumps(message)
        self.on_message(data)

    def respond(self, request: Dict[str, Any], **fields):
        """Answer ``request`` with a frame echoing its req_id."""
        msg_type = fields.pop('msg_type', None)
        self.receive({
            'echo_req': request,
            'req_id': request['req_id'],
            'msg_type': msg_type,
            **fields,
        })

    def sent_calls(self, key: str) -> List[Dict[str, Any]]:
        return [frame for frame in self.sent if key in frame]


class TransportFactory:
    """Stands in for the transport class; remembers every transport it built."""

    def __init__(self):
        self.created: List[FakeTransport] = []

    def __call__(self, url: str) -> FakeTransport:
        transport = FakeTransport(url)
        self.created.append(transport)
        return transport

    @property
    def latest(self) -> FakeTransport:
        return self.created[-1]


async def _wait_for(condition, attempts: int = 100):
    """Let the loop run until ``condition()`` holds."""
    for _ in range(attempts):
        if condition():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


@pytest.fixture
def wait_for():
    return _wait_for


@pytest.fixture
def transport_factory() -> TransportFactory:
    return TransportFactory()


@pytest.fixture
def fatal_handler() -> Mock:
    return Mock()


@pytest.fixture
def api(transport_factory, fatal_handler) -> LiveApi:
    """Session whose transport has not opened yet."""
    return LiveApi(websocket=transport_factory, on_fatal_error=fatal_handler)


@pytest.fixture
def open_api(api, transport_factory) -> LiveApi:
    """Session with an open transport."""
    transport_factory.latest.open()
    return api


@pytest.fixture
def sample_tick_message() -> Dict[str, Any]:
    return {
        'msg_type': 'tick',
        'echo_req': {'ticks': 'R_100'},
        'tick': {'symbol': 'R_100', 'quote': '1234.56', 'epoch': 1640995200, 'id': 'abc'},
    }


@pytest.fixture
def sample_open_contract() -> Dict[str, Any]:
    return {
        'contract_id': 98765,
        'underlying': 'R_100',
        'purchase_time': 1000,
        'sell_time': None,
        'sell_spot': None,
    }
