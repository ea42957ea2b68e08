"""
Shared fixtures for broadlink_protocol tests.

End-to-end tests talk to a FakeBroadlinkDevice over the loopback interface, with short
timeouts so that failure scenarios finish quickly.
"""

import pytest

from broadlink_protocol.device import DeviceInfo
from fake_device import FAKE_MAC, FakeBroadlinkDevice


@pytest.fixture
def fake_device_factory():
    """
    Factory for fake devices.

    Returns a callable taking FakeBroadlinkDevice constructor arguments. The returned
    device must be started with `async with`.
    """

    def _factory(**kwargs) -> FakeBroadlinkDevice:
        return FakeBroadlinkDevice(**kwargs)

    return _factory


@pytest.fixture
def device_info_for():
    """Builds the DeviceInfo that points a client device at a started fake."""

    def _info_for(fake: FakeBroadlinkDevice) -> DeviceInfo:
        return DeviceInfo(
            address=fake.address,
            port=fake.port,
            mac=fake.mac,
            model_code=fake.model_code,
            name=fake.name,
        )

    return _info_for


@pytest.fixture
def sample_mac():
    """A MAC address in canonical order."""
    return FAKE_MAC


@pytest.fixture
def ir_code():
    """A short captured IR code (0x26 type marker)."""
    return bytes([0x26, 0x00, 0x04, 0x00, 0x12, 0x34])
