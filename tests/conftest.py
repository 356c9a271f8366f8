"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from collections.abc import AsyncIterator

import pytest
import pytest_asyncio

from wireflow_bridge.config import BridgeConfig
from wireflow_bridge.gateway import CommandGateway


@pytest.fixture
def config() -> BridgeConfig:
    """Config bound to an ephemeral port with short timings."""
    return BridgeConfig(port=0, request_timeout=0.5, ping_interval=30.0)


@pytest_asyncio.fixture
async def gateway(config: BridgeConfig) -> AsyncIterator[CommandGateway]:
    """A listening gateway, stopped after the test."""
    gw = CommandGateway.from_config(config)
    await gw.start()
    try:
        yield gw
    finally:
        await gw.stop()
