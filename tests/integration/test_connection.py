"""Integration tests against a real editor WebSocket.

A fake editor connects with the websockets client to a gateway bound to an
ephemeral port and answers requests by hand.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest
from websockets.asyncio.client import ClientConnection, connect
from websockets.asyncio.server import ServerConnection
from websockets.exceptions import ConnectionClosed

from wireflow_bridge.config import BridgeConfig
from wireflow_bridge.connection import ConnectionStatus
from wireflow_bridge.errors import BindError, NotConnectedError
from wireflow_bridge.gateway import CommandGateway
from wireflow_bridge.protocol import Event, Request

# =============================================================================
# Helpers
# =============================================================================


def editor_url(gateway: CommandGateway) -> str:
    return f"ws://127.0.0.1:{gateway.connection.port}"


async def wait_until(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


async def connect_editor(gateway: CommandGateway) -> ClientConnection:
    """Connect a fake editor and wait until the gateway has attached it."""
    client = await connect(editor_url(gateway))
    await wait_until(lambda: gateway.is_connected)
    return client


async def answer(client: ClientConnection, **fields: Any) -> dict[str, Any]:
    """Read one request on the editor side and reply to it."""
    request = json.loads(await client.recv())
    reply = {
        "type": fields.pop("type", "result"),
        "correlationId": request["correlationId"],
        "timestamp": "2024-06-10T06:13:20.120Z",
        "success": fields.pop("success", True),
        **fields,
    }
    await client.send(json.dumps(reply))
    return request


# =============================================================================
# Round trips
# =============================================================================


class TestRoundTrip:
    @pytest.mark.asyncio
    async def test_create_rectangle(self, gateway: CommandGateway) -> None:
        client = await connect_editor(gateway)
        try:
            send_task = asyncio.create_task(
                gateway.send(Request.create_rectangle(10, 10, 50, 30))
            )
            request = await answer(
                client, type="element_created", data={"elementId": "el_123"}
            )
            response = await send_task
        finally:
            await client.close()

        assert request["type"] == "create_rectangle"
        assert request["kind"] == "request"
        assert request["params"] == {"x": 10, "y": 10, "width": 50, "height": 30}
        assert response.success
        assert response.correlation_id == request["correlationId"]
        assert response.data == {"elementId": "el_123"}

    @pytest.mark.asyncio
    async def test_replies_out_of_order(self, gateway: CommandGateway) -> None:
        client = await connect_editor(gateway)
        try:
            tasks = [
                asyncio.create_task(gateway.send(Request.get_element(f"el_{i}")))
                for i in range(5)
            ]
            requests = [json.loads(await client.recv()) for _ in range(5)]
            for request in reversed(requests):
                await client.send(
                    json.dumps(
                        {
                            "type": "element",
                            "correlationId": request["correlationId"],
                            "success": True,
                            "data": {"id": request["elementId"]},
                        }
                    )
                )
            responses = await asyncio.gather(*tasks)
        finally:
            await client.close()

        assert [r.data["id"] for r in responses] == [f"el_{i}" for i in range(5)]

    @pytest.mark.asyncio
    async def test_events_reach_subscribers(self, gateway: CommandGateway) -> None:
        received: list[Event] = []
        gateway.on_event(received.append)

        client = await connect_editor(gateway)
        try:
            await client.send(
                json.dumps({"type": "state_changed", "data": {"changeType": "element_added"}})
            )
            await wait_until(lambda: len(received) == 1)
        finally:
            await client.close()

        assert received[0].type == "state_changed"
        assert received[0].data == {"changeType": "element_added"}
        assert len(gateway.pending) == 0

    @pytest.mark.asyncio
    async def test_malformed_frame_keeps_connection(self, gateway: CommandGateway) -> None:
        client = await connect_editor(gateway)
        try:
            await client.send("this is not json")
            send_task = asyncio.create_task(gateway.send(Request.ping()))
            await answer(client, type="pong")
            response = await send_task
        finally:
            await client.close()

        assert response.success
        assert response.type == "pong"


# =============================================================================
# Failures
# =============================================================================


class TestFailures:
    @pytest.mark.asyncio
    async def test_not_connected(self, gateway: CommandGateway) -> None:
        response = await gateway.send(Request.get_state())

        assert gateway.status == ConnectionStatus.DISCONNECTED
        assert response.error_code == "NOT_CONNECTED"
        assert len(gateway.pending) == 0

    @pytest.mark.asyncio
    async def test_send_frame_without_peer_raises(self, gateway: CommandGateway) -> None:
        with pytest.raises(NotConnectedError):
            await gateway.connection.send_frame("{}")

    @pytest.mark.asyncio
    async def test_timeout_then_late_reply_dropped(self, gateway: CommandGateway) -> None:
        gateway.request_timeout = 0.1
        client = await connect_editor(gateway)
        try:
            response = await gateway.send(Request.get_state())
            request = json.loads(await client.recv())

            # Late reply for the expired request
            await client.send(
                json.dumps(
                    {"type": "state", "correlationId": request["correlationId"], "success": True}
                )
            )

            gateway.request_timeout = 2.0
            send_task = asyncio.create_task(gateway.send(Request.ping()))
            await answer(client, type="pong")
            followup = await send_task
        finally:
            await client.close()

        assert response.error_code == "TIMEOUT"
        assert response.error is not None
        assert response.error.message == "Request timed out after 100ms"
        assert followup.success

    @pytest.mark.asyncio
    async def test_disconnect_fails_pending_immediately(self, gateway: CommandGateway) -> None:
        gateway.request_timeout = 5.0
        client = await connect_editor(gateway)

        send_task = asyncio.create_task(gateway.send(Request.get_state()))
        await client.recv()
        await client.close()
        response = await asyncio.wait_for(send_task, timeout=2.0)

        assert response.error_code == "NOT_CONNECTED"
        assert response.error is not None
        assert response.error.message == "Client disconnected"
        assert len(gateway.pending) == 0
        assert not gateway.is_connected

    @pytest.mark.asyncio
    async def test_reconnect_after_disconnect(self, gateway: CommandGateway) -> None:
        first = await connect_editor(gateway)
        await first.close()
        await wait_until(lambda: not gateway.is_connected)

        second = await connect_editor(gateway)
        try:
            send_task = asyncio.create_task(gateway.send(Request.ping()))
            await answer(second, type="pong")
            assert (await send_task).success
        finally:
            await second.close()


# =============================================================================
# Single peer and lifecycle
# =============================================================================


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_second_client_rejected(self, gateway: CommandGateway) -> None:
        first = await connect_editor(gateway)
        try:
            second = await connect(editor_url(gateway))
            with pytest.raises(ConnectionClosed) as exc_info:
                await second.recv()

            assert exc_info.value.rcvd is not None
            assert exc_info.value.rcvd.code == 1008
            assert exc_info.value.rcvd.reason == "Only one client allowed"

            # The first editor is untouched
            assert gateway.is_connected
            send_task = asyncio.create_task(gateway.send(Request.ping()))
            await answer(first, type="pong")
            assert (await send_task).success
        finally:
            await first.close()

    @pytest.mark.asyncio
    async def test_bind_error_on_used_port(
        self, gateway: CommandGateway, config: BridgeConfig
    ) -> None:
        other = CommandGateway.from_config(config)

        with pytest.raises(BindError) as exc_info:
            await other.start(port=gateway.connection.port)

        assert exc_info.value.port == gateway.connection.port
        assert not other.connection.is_listening

    @pytest.mark.asyncio
    async def test_stop_sweeps_and_closes(self, config: BridgeConfig) -> None:
        gateway = CommandGateway.from_config(config.model_copy(update={"request_timeout": 5.0}))
        await gateway.start()
        client = await connect_editor(gateway)

        send_task = asyncio.create_task(gateway.send(Request.get_state()))
        await client.recv()
        await gateway.stop()
        response = await asyncio.wait_for(send_task, timeout=2.0)

        assert response.error_code == "NOT_CONNECTED"
        assert response.error is not None
        assert response.error.message == "Server shutting down"
        with pytest.raises(ConnectionClosed) as exc_info:
            await client.recv()
        assert exc_info.value.rcvd is not None
        assert exc_info.value.rcvd.code == 1000
        assert not gateway.connection.is_listening

        # Idempotent
        await gateway.stop()

    @pytest.mark.asyncio
    async def test_start_twice_raises(self, gateway: CommandGateway) -> None:
        with pytest.raises(RuntimeError):
            await gateway.start()

    @pytest.mark.asyncio
    async def test_context_manager(self, config: BridgeConfig) -> None:
        async with CommandGateway.from_config(config) as gateway:
            assert gateway.connection.is_listening
            assert gateway.connection.port

        assert not gateway.connection.is_listening


# =============================================================================
# Liveness
# =============================================================================


class TestLiveness:
    @pytest.mark.asyncio
    async def test_pings_on_interval_without_extending_timeouts(
        self, config: BridgeConfig, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        pings: list[float] = []
        original_ping = ServerConnection.ping

        async def counting_ping(self: ServerConnection, *args: Any, **kwargs: Any) -> Any:
            pings.append(asyncio.get_running_loop().time())
            return await original_ping(self, *args, **kwargs)

        monkeypatch.setattr(ServerConnection, "ping", counting_ping)

        gateway = CommandGateway.from_config(
            config.model_copy(update={"ping_interval": 0.05, "request_timeout": 0.4})
        )
        await gateway.start()
        client = await connect_editor(gateway)
        try:
            loop = asyncio.get_running_loop()
            started = loop.time()
            # The editor never replies; only pings and pongs cross the socket
            response = await gateway.send(Request.get_state())
            elapsed = loop.time() - started

            assert response.error_code == "TIMEOUT"
            assert response.error is not None
            assert response.error.message == "Request timed out after 400ms"
            assert 0.35 <= elapsed < 1.5
            assert len(pings) >= 3
            assert all(later > earlier for earlier, later in zip(pings, pings[1:]))
            # Pongs keep the editor attached
            assert gateway.is_connected
        finally:
            await client.close()
            await gateway.stop()

    @pytest.mark.asyncio
    async def test_no_pings_without_editor(
        self, config: BridgeConfig, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        pings: list[float] = []

        async def counting_ping(self: ServerConnection, *args: Any, **kwargs: Any) -> Any:
            pings.append(0.0)

        monkeypatch.setattr(ServerConnection, "ping", counting_ping)

        gateway = CommandGateway.from_config(config.model_copy(update={"ping_interval": 0.02}))
        await gateway.start()
        try:
            await asyncio.sleep(0.1)
        finally:
            await gateway.stop()

        assert pings == []
