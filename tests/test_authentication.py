"""
Tests for the authentication handshake, BroadlinkDevice session handling, and device dispatch.
"""

import pytest

from broadlink_protocol.authentication import SessionKey, build_auth_payload, parse_auth_response
from broadlink_protocol.constants import AUTH_COMMAND, DATA_COMMAND, INITIAL_KEY, INITIAL_VECTOR
from broadlink_protocol.crypto import EncryptionContext
from broadlink_protocol.device import BroadlinkDevice, DeviceInfo
from broadlink_protocol.dispatch import DEVICE_TYPES, create_device, get_device_class
from broadlink_protocol.exceptions import HandshakeFailedError, NotAuthenticatedError, TransportTimeout
from broadlink_protocol.hvac import HvacDevice
from broadlink_protocol.remote import RemoteDevice
from fake_device import FAKE_AUTH_ID, FAKE_SESSION_KEY, SHORT_TIMEOUT


class TestHandshakeMessages:
    """Tests for the handshake payload and reply parsing"""

    def test_client_name_truncated(self):
        """Test that long client names are cut to the 32-byte field"""
        payload = build_auth_payload("n" * 40)
        assert len(payload) == 0x50
        assert payload[0x30:0x50] == b"n" * 32

    def test_parse_reply(self):
        """Test extraction of the auth id and session key"""
        plaintext = (0x11223344).to_bytes(4, "little") + FAKE_SESSION_KEY + bytes(12)
        session = parse_auth_response(plaintext)
        assert session.auth_id == 0x11223344
        assert session.key == FAKE_SESSION_KEY
        assert session.iv == INITIAL_VECTOR

    def test_parse_short_reply(self):
        """Test that a reply too short for the key is a handshake failure"""
        with pytest.raises(HandshakeFailedError):
            parse_auth_response(bytes(0x13))

    def test_session_str_hides_key(self):
        """Test that the session key is never rendered"""
        session = SessionKey(auth_id=1, key=FAKE_SESSION_KEY)
        assert FAKE_SESSION_KEY.hex() not in str(session)
        assert FAKE_SESSION_KEY.hex() not in repr(session)


class TestAuthenticate:
    """End-to-end handshake scenarios"""

    @pytest.mark.asyncio
    async def test_authenticate(self, fake_device_factory, device_info_for):
        """Test that a handshake with a 0x649B device installs a new session"""
        async with fake_device_factory(model_code=0x649B) as fake:
            device = create_device(device_info_for(fake), timeout=SHORT_TIMEOUT, retries=0)
            assert not device.is_authenticated
            assert device.encryption_context == EncryptionContext.default()

            session = await device.authenticate()

        assert device.is_authenticated
        assert device.session == session
        assert session.auth_id == FAKE_AUTH_ID
        assert len(session.key) == 16
        assert len(session.iv) == 16
        assert session.key != INITIAL_KEY
        assert device.encryption_context != EncryptionContext.default()
        assert device.encryption_context == EncryptionContext(FAKE_SESSION_KEY)

    @pytest.mark.asyncio
    async def test_handshake_request(self, fake_device_factory, device_info_for):
        """Test that the handshake is sent encrypted with the default context"""
        async with fake_device_factory() as fake:
            device = BroadlinkDevice(device_info_for(fake), timeout=SHORT_TIMEOUT, retries=0)
            await device.authenticate(client_name="Unit Test")

        assert len(fake.auth_requests) == 1
        assert fake.auth_requests[0][: 0x50] == build_auth_payload("Unit Test")

    @pytest.mark.asyncio
    async def test_rejected_handshake(self, fake_device_factory, device_info_for):
        """Test that a rejected handshake leaves the device unauthenticated"""
        async with fake_device_factory() as fake:
            fake.reject_auth = True
            device = BroadlinkDevice(device_info_for(fake), timeout=SHORT_TIMEOUT, retries=0)

            with pytest.raises(HandshakeFailedError):
                await device.authenticate()

        assert not device.is_authenticated
        assert device.session is None

    @pytest.mark.asyncio
    async def test_failed_reauthentication_keeps_session(self, fake_device_factory, device_info_for):
        """Test that a later failed handshake does not revert an established session"""
        async with fake_device_factory() as fake:
            device = BroadlinkDevice(device_info_for(fake), timeout=SHORT_TIMEOUT, retries=0)
            session = await device.authenticate()
            fake.reject_auth = True

            with pytest.raises(HandshakeFailedError):
                await device.authenticate()

        assert device.session == session

    @pytest.mark.asyncio
    async def test_handshake_timeout(self, fake_device_factory, device_info_for):
        """Test that an unanswered handshake times out after all retries"""
        async with fake_device_factory() as fake:
            fake.silent = True
            device = BroadlinkDevice(device_info_for(fake), timeout=0.1, retries=2)

            with pytest.raises(TransportTimeout):
                await device.authenticate()

        assert len(fake.datagrams) == 3
        assert not device.is_authenticated


class TestBroadlinkDevice:
    """Tests for the generic device"""

    def test_device_info_parses_mac_string(self):
        """Test that a MAC may be given as text"""
        info = DeviceInfo(address="192.168.1.5", mac="34:ea:34:11:22:33", model_code=0x649B)
        assert info.mac == bytes([0x34, 0xEA, 0x34, 0x11, 0x22, 0x33])
        assert info.host_and_port == ("192.168.1.5", 80)

    @pytest.mark.asyncio
    async def test_send_command_requires_authentication(self, fake_device_factory, device_info_for):
        """Test that raw commands need a session"""
        async with fake_device_factory() as fake:
            device = BroadlinkDevice(device_info_for(fake), timeout=SHORT_TIMEOUT, retries=0)
            with pytest.raises(NotAuthenticatedError):
                await device.send_command(b"\x00")

        assert fake.datagrams == []

    @pytest.mark.asyncio
    async def test_counts_increase(self, fake_device_factory, device_info_for):
        """Test that every request carries a new count with bit 15 set"""
        async with fake_device_factory() as fake:
            device = BroadlinkDevice(device_info_for(fake), timeout=SHORT_TIMEOUT, retries=0)
            await device.authenticate()
            await device.send_command(b"\x04\x00\x03\x00\x00\x00")

        counts = [int.from_bytes(d[0x28:0x2A], "little") for d in fake.datagrams]
        assert len(counts) == 2
        assert all(count & 0x8000 for count in counts)
        assert counts[0] != counts[1]
        commands = [int.from_bytes(d[0x26:0x28], "little") for d in fake.datagrams]
        assert commands == [AUTH_COMMAND, DATA_COMMAND]

    def test_str(self, sample_mac):
        """Test the human-readable rendering"""
        info = DeviceInfo(address="192.168.1.5", mac=sample_mac, model_code=0x649B, name="Den")
        text = str(create_device(info))
        assert "Den" in text
        assert "192.168.1.5" in text
        assert "34:EA:34:11:22:33" in text
        assert "RM4 Pro" in text


class TestDispatch:
    """Tests for the device type table"""

    @pytest.mark.parametrize("model_code", [0x6026, 0x6184, 0x61A2, 0x649B, 0x653C])
    def test_remotes(self, model_code, sample_mac):
        """Test that remote type codes produce RemoteDevice"""
        device = create_device(DeviceInfo(address="10.0.0.2", mac=sample_mac, model_code=model_code))
        assert isinstance(device, RemoteDevice)
        assert device.info.friendly_type == "Remote"

    def test_hvac(self, sample_mac):
        """Test that the HVAC type code produces HvacDevice"""
        device = create_device(DeviceInfo(address="10.0.0.2", mac=sample_mac, model_code=0x4E2A))
        assert isinstance(device, HvacDevice)
        assert device.info.friendly_type == "HVAC"

    def test_unknown_is_generic(self, sample_mac):
        """Test that unknown type codes produce the generic device"""
        device = create_device(DeviceInfo(address="10.0.0.2", mac=sample_mac, model_code=0xFFFF))
        assert type(device) is BroadlinkDevice
        assert device.info.friendly_model == "Unknown"
        assert get_device_class(0xFFFF) is BroadlinkDevice

    def test_kwargs_forwarded(self, sample_mac):
        """Test that constructor options reach the device"""
        device = create_device(
            DeviceInfo(address="10.0.0.2", mac=sample_mac, model_code=0x649B), timeout=1.5, retries=7
        )
        assert device.timeout == 1.5
        assert device.retries == 7

    def test_table_classes(self):
        """Test that every table entry names a device class"""
        for cls, model in DEVICE_TYPES.values():
            assert issubclass(cls, BroadlinkDevice)
            assert model
