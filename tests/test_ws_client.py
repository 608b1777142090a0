from __future__ import annotations

import asyncio
from contextlib import suppress

import pytest

from shared.stanza import make_query
from wfclient.ws_client import ClientSession


class DummyWebSocket:
    def __init__(self, inbound=None) -> None:
        self.sent_messages: list[str] = []
        self.inbound: list = list(inbound or [])
        self.closed = False
        self.close_code: int | None = None

    async def send(self, data: str) -> None:
        self.sent_messages.append(data)

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self.closed = True
        self.close_code = code

    def __aiter__(self):
        return self._frames()

    async def _frames(self):
        for frame in self.inbound:
            yield frame


def _client(ws=None, timeout=1.0) -> ClientSession:
    client = ClientSession("ws://test", request_timeout=timeout)
    client.websocket = ws or DummyWebSocket()
    return client


class Recorder:
    def __init__(self) -> None:
        self.calls = []
        self.event = asyncio.Event()

    async def __call__(self, stanza) -> None:
        self.calls.append(stanza)
        self.event.set()


@pytest.mark.asyncio
async def test_send_iq_writes_one_frame():
    client = _client()

    iq_id = await client.send_iq("k01.warface", make_query("shop_get_offers"))

    [frame] = client.websocket.sent_messages
    assert f'id="{iq_id}"' in frame
    assert 'to="k01.warface"' in frame
    assert "<shop_get_offers" in frame
    assert client.pending_count == 0


@pytest.mark.asyncio
async def test_result_is_delivered_to_the_handler():
    client = _client()
    handler = Recorder()

    iq_id = await client.send_iq("k01.warface", make_query("join_channel"), handler)
    await client.dispatch(
        f"<iq type='result' id='{iq_id}' from='k01.warface' to='me'>"
        "<query xmlns='urn:cryonline:k01'><join_channel/></query></iq>"
    )
    await asyncio.wait_for(handler.event.wait(), 1.0)

    [stanza] = handler.calls
    assert stanza.type == "result"
    assert stanza.query_child().tag == "join_channel"
    assert client.pending_count == 0


@pytest.mark.asyncio
async def test_error_is_delivered_to_the_handler():
    client = _client()
    handler = Recorder()

    iq_id = await client.send_iq("k01.warface", make_query("join_channel"), handler)
    await client.dispatch(
        f"<iq type='error' id='{iq_id}'><error type='cancel' code='8' custom_code='3'/></iq>"
    )
    await asyncio.wait_for(handler.event.wait(), 1.0)

    [stanza] = handler.calls
    assert stanza.is_error
    assert stanza.error.get("custom_code") == "3"


@pytest.mark.asyncio
async def test_timeout_delivers_none_once():
    client = _client(timeout=0.05)
    handler = Recorder()

    iq_id = await client.send_iq("k01.warface", make_query("join_channel"), handler)
    await asyncio.wait_for(handler.event.wait(), 1.0)

    # a late answer is dropped
    await client.dispatch(f"<iq type='result' id='{iq_id}'/>")
    await asyncio.sleep(0)

    assert handler.calls == [None]
    assert client.pending_count == 0


@pytest.mark.asyncio
async def test_abandon_all_delivers_none():
    client = _client()
    first, second = Recorder(), Recorder()

    await client.send_iq("a", make_query("x"), first)
    await client.send_iq("b", make_query("y"), second)
    client.abandon_all()
    await asyncio.wait_for(asyncio.gather(first.event.wait(), second.event.wait()), 1.0)

    assert first.calls == [None]
    assert second.calls == [None]


@pytest.mark.asyncio
async def test_recv_loop_skips_bad_frames_and_abandons_on_exit():
    handler = Recorder()
    pushed = []

    async def on_notification(stanza):
        pushed.append(stanza.query_child().get("id"))

    ws = DummyWebSocket(inbound=[
        "<iq type='result'",
        "<message to='me'/>",
        b"<iq type='get' id='s1'><query><notification id='n1'/></query></iq>",
    ])
    client = _client(ws)
    client.on("notification", on_notification)
    await client.send_iq("k01.warface", make_query("join_channel"), handler)

    await client.recv_loop()
    await asyncio.wait_for(handler.event.wait(), 1.0)

    assert pushed == ["n1"]
    assert handler.calls == [None]


@pytest.mark.asyncio
async def test_close_abandons_and_closes_socket():
    client = _client()
    handler = Recorder()

    await client.send_iq("k01.warface", make_query("join_channel"), handler)
    await client.close()

    assert handler.calls == [None]
    assert client.websocket.closed is True
    assert client.websocket.close_code == 1000


@pytest.mark.asyncio
async def test_spawned_tasks_are_tracked_until_done():
    client = _client()
    gate = asyncio.Event()

    async def work():
        await gate.wait()

    task = client.spawn(work())
    assert task in client._background_tasks
    gate.set()
    with suppress(asyncio.CancelledError):
        await task
    await asyncio.sleep(0)
    assert task not in client._background_tasks


@pytest.mark.asyncio
async def test_close_survives_a_failing_response_handler(caplog):
    client = _client()
    later = Recorder()

    async def broken(stanza):
        raise ValueError("callback blew up")

    await client.send_iq("k01.warface", make_query("join_channel"), broken)
    await client.send_iq("k01.warface", make_query("switch_channel"), later)
    await client.close()

    assert later.calls == [None]
    assert client.websocket.closed is True
    assert "callback blew up" in caplog.text
    assert not client._background_tasks


@pytest.mark.asyncio
async def test_failing_push_handler_does_not_stop_recv_loop():
    handler = Recorder()
    seen = []

    async def notif_a(stanza):
        raise KeyError("boom")

    async def notif_b(stanza):
        seen.append(stanza.id)

    ws = DummyWebSocket(inbound=[
        "<iq type='get' id='p1'><query><notif_a/></query></iq>",
        "<iq type='get' id='p2'><query><notif_b/></query></iq>",
    ])
    client = _client(ws)
    client.on("notif_a", notif_a)
    client.on("notif_b", notif_b)
    iq_id = await client.send_iq("k01.warface", make_query("join_channel"), handler)
    ws.inbound.append(f"<iq type='result' id='{iq_id}'><query><join_channel/></query></iq>")

    await client.recv_loop()
    await asyncio.wait_for(handler.event.wait(), 1.0)

    assert seen == ["p2"]
    assert handler.calls[0].type == "result"
