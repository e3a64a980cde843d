# tests/test_ws_transport.py

import pytest

from robot_base.command.binary_commands import encode_initialize, encode_set_report_frequency
from robot_base.core.errors import ConnectError, ReceiveError, SendError
from robot_base.core.messages import ReportFrequency
from robot_base.core.settings import SessionSettings
from robot_base.research.simulation import SimulatedBase, serve_simulated_base
from robot_base.telemetry.binary_parser import decode_frame
from robot_base.telemetry.models import BaseStatus
from robot_base.transport.base_transport import SessionState
from robot_base.transport.ws_transport import WebSocketSession, connect


FAST = SessionSettings(open_timeout_s=2.0, receive_timeout_s=0.5, close_timeout_s=1.0)


@pytest.mark.asyncio
async def test_exchange_with_simulated_base(sim):
    base, url = sim
    session = await connect(url, FAST)
    try:
        assert session.state is SessionState.CONNECTED
        assert session.is_open

        await session.send(encode_set_report_frequency(1, ReportFrequency.RF_50HZ))
        status = decode_frame(await session.receive())
        assert isinstance(status, BaseStatus)
        assert status.ack_seq == 1

        await session.send(encode_initialize(2))
        status = decode_frame(await session.receive())
        assert status.ack_seq == 2
        assert status.api_control_initialized is True
        assert status.session_holder == status.session_id
    finally:
        await session.close()

    assert base.report_frequency is ReportFrequency.RF_50HZ
    stats = session.stats()
    assert stats["frames_sent"] == 2
    assert stats["frames_received"] == 2
    assert stats["state"] == "closed"


@pytest.mark.asyncio
async def test_receive_timeout_leaves_session_open(sim):
    _, url = sim
    session = await connect(url, FAST)
    try:
        with pytest.raises(ReceiveError):
            await session.receive(timeout_s=0.05)
        assert session.is_open
    finally:
        await session.close()


@pytest.mark.asyncio
async def test_close_is_idempotent_and_blocks_send(sim):
    _, url = sim
    session = await connect(url, FAST)

    await session.close()
    await session.close()

    assert session.state is SessionState.CLOSED
    assert session.close_calls == 2
    with pytest.raises(SendError):
        await session.send(encode_initialize(1))


@pytest.mark.asyncio
async def test_peer_close_surfaces_as_receive_error():
    base = SimulatedBase()
    server = await serve_simulated_base(base, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]

    session = await connect(f"ws://127.0.0.1:{port}", FAST)
    server.close()
    await server.wait_closed()

    try:
        with pytest.raises(ReceiveError):
            await session.receive(timeout_s=1.0)
        assert not session.is_open
    finally:
        await session.close()


@pytest.mark.asyncio
async def test_unreachable_endpoint_raises_connect_error():
    session = WebSocketSession("ws://127.0.0.1:1", open_timeout_s=1.0)
    with pytest.raises(ConnectError):
        await session.connect()
    assert session.state is SessionState.CLOSED


@pytest.mark.asyncio
async def test_invalid_uri_raises_connect_error():
    with pytest.raises(ConnectError):
        await connect("http://not-a-websocket", FAST)


def test_from_settings_copies_timeouts():
    s = SessionSettings(open_timeout_s=1.5, receive_timeout_s=0.25, close_timeout_s=0.75, tcp_nodelay=False)
    session = WebSocketSession.from_settings("ws://robot:8439", s)

    assert session.endpoint == "ws://robot:8439"
    assert session.open_timeout_s == 1.5
    assert session.receive_timeout_s == 0.25
    assert session.close_timeout_s == 0.75
    assert session.tcp_nodelay is False
    assert session.state is SessionState.DISCONNECTED
