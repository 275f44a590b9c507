"""Shared fixtures for broadlink_lan tests."""

from __future__ import annotations

import pytest

from broadlink_lan.device import Device
from tests.helpers import DEVICE_HOST, DEVICE_MAC, FakeEndpoint


@pytest.fixture
def fake_endpoint() -> FakeEndpoint:
    return FakeEndpoint()


@pytest.fixture
def device(fake_endpoint: FakeEndpoint) -> Device:
    return Device(DEVICE_HOST, DEVICE_MAC, 0x2737, timeout=1.0, endpoint=fake_endpoint)  # type: ignore[arg-type]
