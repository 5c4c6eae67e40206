import asyncio

import pytest

from hangouts.core.ActiveClientArbiter import ActiveClientArbiter, first_email
from hangouts.core.MessageTypes import ActiveClientState
from shared.envelope import TransportError

from protocol_fakes import FakeApi, FakeTime, make_entity


def make_arbiter(api=None, client_id="client-42", fake_time=None):
    api = api or FakeApi()
    fake_time = fake_time or FakeTime()
    arbiter = ActiveClientArbiter(api, lambda: client_id, time_source=fake_time)
    return arbiter, api, fake_time


@pytest.mark.asyncio
async def test_repeated_interaction_sends_one_request():
    arbiter, api, _ = make_arbiter()

    scheduled = [arbiter.mark_interactive() for _ in range(1000)]
    await arbiter.drain()

    assert scheduled.count(True) == 1
    assert len(api.set_active_calls) == 1
    assert api.set_active_calls[0] == {
        "is_active": True,
        "full_jid": "ada@example.com/client-42",
        "timeout_secs": 120,
    }
    assert arbiter.is_active
    assert arbiter.user_interaction_state is True


@pytest.mark.asyncio
async def test_reannounces_after_limit_elapses():
    arbiter, api, fake_time = make_arbiter()

    arbiter.mark_interactive()
    fake_time.advance(30)
    arbiter.mark_interactive()
    fake_time.advance(31)
    arbiter.mark_interactive()
    await arbiter.drain()

    assert len(api.set_active_calls) == 2
    assert arbiter.last_announced_at == fake_time.now


@pytest.mark.asyncio
async def test_email_is_looked_up_once():
    arbiter, api, fake_time = make_arbiter()

    for _ in range(3):
        arbiter.mark_interactive()
        await arbiter.drain()
        fake_time.advance(61)

    assert api.self_info_calls == 1
    assert len(api.set_active_calls) == 3
    assert arbiter.email == "ada@example.com"


@pytest.mark.asyncio
async def test_slow_email_lookup_is_shared_between_announcements():
    class SlowApi(FakeApi):
        def __init__(self):
            super().__init__()
            self.gate = asyncio.Event()
            self.lookups_started = 0

        async def get_self_info(self):
            self.lookups_started += 1
            await self.gate.wait()
            return await super().get_self_info()

    arbiter, api, fake_time = make_arbiter(SlowApi())

    arbiter.mark_interactive()
    await asyncio.sleep(0)
    fake_time.advance(61)
    assert arbiter.mark_interactive() is True
    await asyncio.sleep(0)

    api.gate.set()
    await arbiter.drain()

    assert api.lookups_started == 1
    assert len(api.set_active_calls) == 2
    assert arbiter.email == "ada@example.com"


@pytest.mark.asyncio
async def test_remembered_email_skips_lookup():
    arbiter, api, _ = make_arbiter()
    arbiter.remember_self(make_entity(emails=["grace@example.com"]))

    arbiter.mark_interactive()
    await arbiter.drain()

    assert api.self_info_calls == 0
    assert api.set_active_calls[0]["full_jid"] == "grace@example.com/client-42"


@pytest.mark.asyncio
async def test_account_without_email_disables_announcements():
    api = FakeApi()
    api.self_entity = make_entity(emails=[])
    arbiter, api, fake_time = make_arbiter(api)

    arbiter.mark_interactive()
    await arbiter.drain()
    fake_time.advance(61)

    assert arbiter.disabled
    assert arbiter.mark_interactive() is False
    assert api.set_active_calls == []
    assert api.self_info_calls == 1


@pytest.mark.asyncio
async def test_no_client_id_is_a_no_op():
    arbiter, api, _ = make_arbiter(client_id=None)

    assert arbiter.mark_interactive() is False
    await arbiter.drain()

    assert api.set_active_calls == []
    assert arbiter.active_client_state is ActiveClientState.IS_INACTIVE


@pytest.mark.asyncio
async def test_failed_request_keeps_state():
    class FailingApi(FakeApi):
        async def set_active_client(self, is_active, full_jid, timeout_secs):
            await super().set_active_client(is_active, full_jid, timeout_secs)
            raise TransportError("503")

    arbiter, api, _ = make_arbiter(FailingApi())

    arbiter.mark_interactive()
    await arbiter.drain()
    arbiter.mark_interactive()

    assert len(api.set_active_calls) == 1
    assert arbiter.is_active


@pytest.mark.asyncio
async def test_other_client_active_triggers_announcement():
    arbiter, api, _ = make_arbiter()
    arbiter.mark_interactive()
    await arbiter.drain()

    arbiter.active_client_state = ActiveClientState.OTHER_CLIENT_ACTIVE
    assert arbiter.mark_interactive() is True
    await arbiter.drain()

    assert len(api.set_active_calls) == 2


@pytest.mark.asyncio
async def test_going_idle_sends_nothing():
    arbiter, api, _ = make_arbiter()

    arbiter.user_interaction_state = False
    await arbiter.drain()

    assert api.set_active_calls == []


@pytest.mark.asyncio
async def test_reset_forgets_leadership():
    arbiter, api, _ = make_arbiter()
    arbiter.mark_interactive()
    await arbiter.drain()

    arbiter.reset()

    assert arbiter.active_client_state is ActiveClientState.IS_INACTIVE
    assert arbiter.last_announced_at is None
    assert arbiter.mark_interactive() is True
    await arbiter.drain()
    assert len(api.set_active_calls) == 2


def test_active_state_property():
    assert ActiveClientState.IS_ACTIVE.is_active
    assert not ActiveClientState.IS_INACTIVE.is_active
    assert not ActiveClientState.OTHER_CLIENT_ACTIVE.is_active


def test_first_email():
    assert first_email(None) is None
    assert first_email(make_entity(emails=[])) is None
    assert first_email(make_entity(emails=["a@x", "b@x"])) == "a@x"
