"""Subscription replay across a simulated drop and reconnect."""

import asyncio

import pytest


PROPOSAL = {
    'amount': 10,
    'basis': 'stake',
    'contract_type': 'CALL',
    'currency': 'USD',
    'duration': 5,
    'duration_unit': 't',
    'symbol': 'R_100',
}


async def subscribe_everything(api, transport):
    """Authorize and subscribe to every replayable feed on an open session."""
    authorized = api.authorize('token-123')
    transport.respond(transport.sent[-1], msg_type='authorize', authorize={'loginid': 'VRTC1'})
    await authorized

    api.subscribe_to_balance()
    api.subscribe_to_transactions()
    api.subscribe_to_all_open_contracts()
    api.subscribe_to_ticks(['R_100', 'R_50'])
    api.subscribe_to_price_for_contract_proposal(PROPOSAL)


@pytest.mark.integration
class TestReplay:

    @pytest.mark.asyncio
    async def test_auth_independent_feeds_replayed_once(self, open_api, transport_factory):
        await subscribe_everything(open_api, transport_factory.latest)

        transport_factory.latest.drop()
        reconnected = transport_factory.latest
        assert reconnected.sent == []

        reconnected.open()

        assert [f['authorize'] for f in reconnected.sent_calls('authorize')] == ['token-123']
        assert [f['ticks'] for f in reconnected.sent_calls('ticks')] == ['R_100', 'R_50']
        proposals = reconnected.sent_calls('proposal')
        assert len(proposals) == 1
        assert proposals[0]['contract_type'] == 'CALL'
        assert proposals[0]['subscribe'] == 1

        # Authorization first, then ticks, then proposals
        order = [next(k for k in ('authorize', 'ticks', 'proposal') if k in f) for f in reconnected.sent]
        assert order == ['authorize', 'ticks', 'ticks', 'proposal']

    @pytest.mark.asyncio
    async def test_auth_gated_feeds_wait_for_authorize(self, open_api, transport_factory):
        await subscribe_everything(open_api, transport_factory.latest)

        transport_factory.latest.drop()
        reconnected = transport_factory.latest
        reconnected.open()

        assert reconnected.sent_calls('balance') == []
        assert reconnected.sent_calls('transaction') == []

        auth_request = reconnected.sent_calls('authorize')[0]
        reconnected.respond(auth_request, msg_type='authorize', authorize={'loginid': 'VRTC1'})

        assert len(reconnected.sent_calls('balance')) == 1
        assert len(reconnected.sent_calls('transaction')) == 1
        portfolio = [f for f in reconnected.sent_calls('proposal_open_contract') if 'contract_id' not in f]
        assert len(portfolio) == 1
        assert open_api.on_auth is None

        # A second authorize response does not replay again
        reconnected.respond(auth_request, msg_type='authorize', authorize={'loginid': 'VRTC1'})
        assert len(reconnected.sent_calls('balance')) == 1

    @pytest.mark.asyncio
    async def test_inactive_feeds_are_not_replayed(self, open_api, transport_factory):
        transport = transport_factory.latest
        await subscribe_everything(open_api, transport)
        open_api.unsubscribe_from_balance()
        open_api.unsubscribe_from_all_open_contracts()

        transport.drop()
        reconnected = transport_factory.latest
        reconnected.open()
        reconnected.respond(reconnected.sent_calls('authorize')[0], msg_type='authorize', authorize={})

        assert reconnected.sent_calls('balance') == []
        assert len(reconnected.sent_calls('transaction')) == 1
        assert reconnected.sent_calls('proposal_open_contract') == []

    @pytest.mark.asyncio
    async def test_failed_authorize_does_not_release_gated_feeds(self, open_api, transport_factory):
        await subscribe_everything(open_api, transport_factory.latest)

        transport_factory.latest.drop()
        reconnected = transport_factory.latest
        reconnected.open()
        reconnected.respond(
            reconnected.sent_calls('authorize')[0],
            msg_type='authorize',
            error={'code': 'InvalidToken', 'message': 'The token is invalid.'},
        )
        await asyncio.sleep(0)

        assert reconnected.sent_calls('balance') == []
        assert open_api.on_auth is not None

    @pytest.mark.asyncio
    async def test_replay_does_not_change_state(self, open_api, transport_factory):
        await subscribe_everything(open_api, transport_factory.latest)
        before = open_api.state.snapshot()

        transport_factory.latest.drop()
        transport_factory.latest.open()
        transport_factory.latest.respond(
            transport_factory.latest.sent_calls('authorize')[0], msg_type='authorize', authorize={}
        )

        assert open_api.state == before

    @pytest.mark.asyncio
    async def test_duplicate_subscribe_after_replay_is_silent(self, open_api, transport_factory):
        transport = transport_factory.latest
        open_api.subscribe_to_tick('R_100')

        transport.drop()
        reconnected = transport_factory.latest
        reconnected.open()

        errors = []
        open_api.events.on('error', errors.append)
        reconnected.respond(
            reconnected.sent_calls('ticks')[0],
            msg_type='tick',
            error={'code': 'AlreadySubscribed', 'message': 'You are already subscribed to R_100'},
        )
        await asyncio.sleep(0)

        assert str(reconnected.sent_calls('ticks')[0]['req_id']) not in open_api.unresolved
        assert len(errors) == 1

    @pytest.mark.asyncio
    async def test_requests_sent_while_down_survive_reconnect(self, open_api, transport_factory):
        transport_factory.latest.drop()

        future = open_api.get_server_time()
        reconnected = transport_factory.latest
        reconnected.open()
        reconnected.respond(reconnected.sent_calls('time')[0], msg_type='time', time=42)

        assert (await future)['time'] == 42

    @pytest.mark.asyncio
    async def test_disconnect_forgets_token_for_later_replay(self, open_api, transport_factory):
        await subscribe_everything(open_api, transport_factory.latest)

        open_api.disconnect()
        open_api.resubscribe()

        assert open_api.buffered_sends
        assert not any('authorize' in frame for frame in open_api.buffered_sends)

    @pytest.mark.asyncio
    async def test_failed_reconnects_do_not_pile_up_replay(self, open_api, transport_factory):
        open_api.subscribe_to_tick('R_100')
        transport_factory.latest.drop()

        for _ in range(2):
            transport_factory.latest.fail(OSError('network unreachable'))
            transport_factory.latest.drop()

        reconnected = transport_factory.latest
        assert len(open_api.buffered_sends) == 1
        reconnected.open()

        assert [f['ticks'] for f in reconnected.sent_calls('ticks')] == ['R_100']
        replay_id = str(reconnected.sent_calls('ticks')[0]['req_id'])
        # The original subscribe request plus the surviving replay
        assert set(open_api.unresolved) == {'1', replay_id}

    @pytest.mark.asyncio
    async def test_stale_replay_futures_are_cancelled(self, open_api, transport_factory):
        await subscribe_everything(open_api, transport_factory.latest)
        transport_factory.latest.drop()
        first_attempt = dict(open_api.unresolved)

        transport_factory.latest.drop()
        await asyncio.sleep(0)

        stale = [p for req_id, p in first_attempt.items() if req_id not in open_api.unresolved]
        assert stale
        assert all(p.future.cancelled() for p in stale)

        reconnected = transport_factory.latest
        reconnected.open()
        assert len(reconnected.sent_calls('authorize')) == 1
        assert len(reconnected.sent_calls('ticks')) == 2
