"""Unit tests for the tick monitor service."""

import asyncio
import logging
from unittest.mock import patch

import pytest

from binary_live.config.settings import LiveApiSettings, MonitorConfig
from binary_live.errors import LiveError
from binary_live.main import TickMonitorService


@pytest.fixture
def make_service():
    def _make(**monitor):
        settings = LiveApiSettings(monitor=MonitorConfig(**monitor))
        with patch('binary_live.main.load_settings', return_value=settings), \
                patch('binary_live.main.setup_logging'):
            return TickMonitorService()
    return _make


@pytest.mark.unit
class TestTickMonitorService:

    @pytest.mark.asyncio
    async def test_subscribes_to_ticks_without_token(self, make_service, open_api, transport_factory):
        service = make_service(symbols=['R_100', 'R_50'])
        service.api = open_api

        await service._subscribe()

        transport = transport_factory.latest
        assert [frame['ticks'] for frame in transport.sent_calls('ticks')] == ['R_100', 'R_50']
        assert transport.sent_calls('authorize') == []
        assert open_api.state.ticks == ['R_100', 'R_50']

    @pytest.mark.asyncio
    async def test_authorizes_before_account_feeds(self, make_service, open_api, transport_factory, wait_for):
        service = make_service(symbols=['R_100'], token='tok', balance=True, portfolio=True)
        service.api = open_api
        transport = transport_factory.latest

        task = asyncio.create_task(service._subscribe())
        await wait_for(lambda: transport.sent_calls('authorize'))
        assert transport.sent_calls('balance') == []

        transport.respond(transport.sent_calls('authorize')[0], msg_type='authorize',
                          authorize={'loginid': 'CR123'})
        await task

        keys = [next(k for k in frame if k != 'req_id') for frame in transport.sent]
        assert keys == ['authorize', 'balance', 'proposal_open_contract', 'ticks']
        assert open_api.state.token == 'tok'
        assert open_api.state.balance is True
        assert open_api.state.transactions is False

    @pytest.mark.asyncio
    async def test_failed_authorization_raises(self, make_service, open_api, transport_factory, wait_for):
        service = make_service(token='bad')
        service.api = open_api
        transport = transport_factory.latest

        task = asyncio.create_task(service._subscribe())
        await wait_for(lambda: transport.sent_calls('authorize'))
        transport.respond(transport.sent_calls('authorize')[0], msg_type='authorize',
                          error={'code': 'InvalidToken', 'message': 'The token is invalid.'})

        with pytest.raises(LiveError) as exc_info:
            await task
        assert exc_info.value.code == 'InvalidToken'
        assert transport.sent_calls('ticks') == []

    @pytest.mark.asyncio
    async def test_rejected_tick_subscription_is_logged(self, make_service, open_api, transport_factory, caplog):
        service = make_service(symbols=['NOPE'])
        service.api = open_api
        transport = transport_factory.latest

        await service._subscribe()
        transport.respond(transport.sent_calls('ticks')[0], msg_type='tick',
                          error={'code': 'InvalidSymbol', 'message': 'Symbol NOPE invalid'})

        with caplog.at_level(logging.WARNING, logger='binary_live.session'):
            await asyncio.sleep(0)

        assert 'NOPE tick subscription failed: InvalidSymbol' in caplog.text

    def test_tick_listener_logs_quote(self, make_service, open_api, sample_tick_message, caplog):
        service = make_service()
        service.api = open_api
        service._register_listeners()

        with caplog.at_level(logging.INFO, logger='binary_live.main'):
            open_api.events.emit('tick', sample_tick_message)

        assert 'R_100 1234.56' in caplog.text

    def test_stop_sets_shutdown_event(self, make_service):
        service = make_service()
        service.stop()
        assert service._shutdown_event.is_set()
