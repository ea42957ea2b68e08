"""
Tests for the climate state record, the HVAC data codec, and HvacDevice operations.
"""

import pytest

from broadlink_protocol.exceptions import NotAuthenticatedError, ProtocolMalformedError, ValidationError
from broadlink_protocol.hvac import (
    ClimateInfo,
    ClimateState,
    HvacDataCommand,
    HvacDevice,
    HvacMode,
    HvacPreset,
    HvacSpeed,
    HvacSwingHorizontal,
    HvacSwingVertical,
    pack_hvac_payload,
    unpack_hvac_payload,
)
from fake_device import HVAC_MODEL_CODE, SHORT_TIMEOUT


class TestClimateStateEncoding:
    """Tests for the 13-byte bit-packed climate record"""

    def test_default_state(self):
        """Test the encoding of the default state"""
        data = ClimateState().encode()

        assert len(data) == 13
        assert data[0] == ((24 - 8) << 3) | 7
        assert data[1] == 1 << 5
        assert data[2] == 0x0F
        assert data[3] == 5 << 5
        assert data[8] == 0
        assert data[10] == 0x10

    def test_field_positions(self):
        """Test that each field lands in its documented bits"""
        state = ClimateState(
            power=True,
            mode=HvacMode.HEAT,
            fan_speed=HvacSpeed.LOW,
            swing_v=HvacSwingVertical.POS2,
            swing_h=HvacSwingHorizontal.RIGHT_FIX,
            target_temp=21.5,
            preset=HvacPreset.MUTE,
            sleep=True,
            ifeel=True,
            health=True,
            clean=True,
            display=False,
            mildew=True,
        )
        data = state.encode()

        assert data[0] == (13 << 3) | 2
        assert data[1] == 6 << 5
        assert data[2] == 0x8F
        assert data[3] == 3 << 5
        assert data[4] == 2
        assert data[5] == (3 << 5) | 0x08 | 0x04
        assert data[8] == 0x20 | 0x04 | 0x02
        assert data[10] == 0x08

    @pytest.mark.parametrize(
        "state",
        [
            ClimateState(),
            ClimateState(power=True, mode=HvacMode.COOL, target_temp=16.0, fan_speed=HvacSpeed.HIGH),
            ClimateState(mode=HvacMode.FAN, target_temp=32.0, swing_h=HvacSwingHorizontal.ON, swing_v=HvacSwingVertical.ON),
            ClimateState(
                power=True,
                mode=HvacMode.DRY,
                target_temp=27.5,
                preset=HvacPreset.TURBO,
                sleep=True,
                ifeel=True,
                health=True,
                clean=True,
                display=False,
                mildew=True,
            ),
        ],
    )
    def test_round_trip(self, state):
        """Test that decode(encode(state)) == state"""
        assert ClimateState.decode(state.encode()) == state

    def test_decode_rejects_bad_mode(self):
        """Test that an out-of-range mode from the device is malformed"""
        data = bytearray(ClimateState().encode())
        data[5] = 7 << 5
        with pytest.raises(ProtocolMalformedError):
            ClimateState.decode(bytes(data))

    def test_decode_rejects_bad_fan_speed(self):
        """Test that an undefined fan speed from the device is malformed"""
        data = bytearray(ClimateState().encode())
        data[3] = 4 << 5
        with pytest.raises(ProtocolMalformedError):
            ClimateState.decode(bytes(data))

    def test_decode_rejects_out_of_range_temperature(self):
        """Test that a target temperature outside 16-32 from the device is malformed"""
        data = bytearray(ClimateState().encode())
        data[0] = (0 << 3) | 7
        with pytest.raises(ProtocolMalformedError):
            ClimateState.decode(bytes(data))

    def test_decode_rejects_short_record(self):
        """Test that a truncated record is malformed"""
        with pytest.raises(ProtocolMalformedError):
            ClimateState.decode(bytes(12))


class TestClimateStateSetters:
    """Tests for the validating setters"""

    @pytest.mark.parametrize("temp", [16.0, 16.5, 24, 31.5, 32.0])
    def test_set_target_temp_accepts_valid(self, temp):
        """Test that temperatures on the half-degree grid within range are accepted"""
        state = ClimateState()
        state.set_target_temp(temp)
        assert state.target_temp == temp

    @pytest.mark.parametrize("temp", [15.5, 32.5, 0, 100, 20.25, 22.7])
    def test_set_target_temp_rejects_invalid(self, temp):
        """Test that invalid temperatures are rejected without changing the state"""
        state = ClimateState(target_temp=22.0)
        with pytest.raises(ValidationError):
            state.set_target_temp(temp)
        assert state.target_temp == 22.0

    def test_enum_setters_accept_ints(self):
        """Test that setters accept raw enum values"""
        state = ClimateState()
        state.set_mode(1)
        state.set_fan_speed(5)
        state.set_swing_v(7)
        state.set_swing_h(2)
        state.set_preset(1)
        assert state.mode == HvacMode.COOL
        assert state.fan_speed == HvacSpeed.AUTO
        assert state.swing_v == HvacSwingVertical.OFF
        assert state.swing_h == HvacSwingHorizontal.LEFT_FIX
        assert state.preset == HvacPreset.TURBO

    @pytest.mark.parametrize(
        "setter,value",
        [("set_mode", 5), ("set_fan_speed", 4), ("set_swing_v", 6), ("set_swing_h", 3), ("set_preset", 3)],
    )
    def test_enum_setters_reject_invalid(self, setter, value):
        """Test that setters reject values outside their enum without changing the state"""
        state = ClimateState()
        before = ClimateState()
        with pytest.raises(ValidationError):
            getattr(state, setter)(value)
        assert state == before

    def test_constructor_validates(self):
        """Test that an invalid record cannot be constructed"""
        with pytest.raises(ValidationError):
            ClimateState(target_temp=40.0)
        with pytest.raises(ValidationError):
            ClimateState(mode=9)

    @pytest.mark.parametrize(
        "field,value",
        [("target_temp", 16.25), ("target_temp", 40.0), ("mode", 9), ("fan_speed", 4), ("preset", "turbo")],
    )
    def test_encode_revalidates_assigned_fields(self, field, value):
        """Test that fields assigned directly are checked before encoding"""
        state = ClimateState()
        setattr(state, field, value)
        with pytest.raises(ValidationError):
            state.encode()

    def test_encode_accepts_assigned_raw_values(self):
        """Test that a valid raw value assigned directly encodes like its enum member"""
        state = ClimateState()
        state.mode = 3
        assert state.encode() == ClimateState(mode=HvacMode.HEAT).encode()


class TestClimateInfo:
    """Tests for the AC info record"""

    def test_decode(self):
        """Test power and ambient temperature extraction"""
        data = bytearray(22)
        data[1] = 0x01
        data[5] = 23
        data[21] = 4
        info = ClimateInfo.decode(bytes(data))
        assert info.power is True
        assert info.ambient_temp == pytest.approx(23.4)

    def test_decode_short(self):
        """Test that a truncated record is malformed"""
        with pytest.raises(ProtocolMalformedError):
            ClimateInfo.decode(bytes(21))


class TestHvacCodec:
    """Tests for pack_hvac_payload and unpack_hvac_payload"""

    def test_pack_get_state(self):
        """Test the get-state request against its known encoding"""
        expected = bytes.fromhex("0c00bb0006800000020011012b7e")
        assert pack_hvac_payload(HvacDataCommand.GET_STATE) == expected

    def test_pack_set_state_layout(self):
        """Test lengths and command of a request with data"""
        payload = ClimateState().encode()
        message = pack_hvac_payload(HvacDataCommand.SET_STATE, payload)

        assert len(message) == 12 + 13 + 2
        assert int.from_bytes(message[0:2], "little") == 13 + 2 + 10
        assert int.from_bytes(message[8:10], "little") == 13 + 2
        assert int.from_bytes(message[10:12], "little") == 0x0101
        assert message[12:25] == payload

    def test_unpack_ignores_padding(self):
        """Test that block padding after the checksum is ignored"""
        message = pack_hvac_payload(HvacDataCommand.GET_AC_INFO, bytes(range(22)))
        assert unpack_hvac_payload(message + bytes(12)) == bytes(range(22))

    def test_unpack_bad_checksum(self):
        """Test that a corrupted reply is malformed"""
        message = bytearray(pack_hvac_payload(HvacDataCommand.GET_STATE, bytes(13)))
        message[14] ^= 0x01
        with pytest.raises(ProtocolMalformedError):
            unpack_hvac_payload(bytes(message))

    def test_unpack_truncated(self):
        """Test that a reply shorter than its length field is malformed"""
        message = pack_hvac_payload(HvacDataCommand.GET_STATE, bytes(13))
        with pytest.raises(ProtocolMalformedError):
            unpack_hvac_payload(message[:-4])

    def test_unpack_too_short(self):
        """Test that a reply shorter than a header is malformed"""
        with pytest.raises(ProtocolMalformedError):
            unpack_hvac_payload(bytes(8))


class TestHvacDevice:
    """End-to-end HvacDevice scenarios"""

    @pytest.mark.asyncio
    async def test_set_then_get_state(self, fake_device_factory, device_info_for):
        """Test that a written state reads back unchanged"""
        state = ClimateState(power=True, mode=HvacMode.COOL, fan_speed=HvacSpeed.MID, target_temp=22.5)
        async with fake_device_factory(model_code=HVAC_MODEL_CODE) as fake:
            device = HvacDevice(device_info_for(fake), timeout=SHORT_TIMEOUT, retries=0)
            await device.authenticate()

            await device.set_state(state)
            result = await device.get_state()

        assert result == state
        assert fake.hvac_state == state.encode()
        assert fake.hvac_commands == [HvacDataCommand.SET_STATE, HvacDataCommand.GET_STATE]

    @pytest.mark.asyncio
    async def test_set_state_rejects_invalid_state(self, fake_device_factory, device_info_for):
        """Test that an invalid state is refused before anything is sent"""
        async with fake_device_factory(model_code=HVAC_MODEL_CODE) as fake:
            device = HvacDevice(device_info_for(fake), timeout=SHORT_TIMEOUT, retries=0)
            await device.authenticate()
            state = ClimateState()
            state.target_temp = 16.25

            with pytest.raises(ValidationError):
                await device.set_state(state)

        assert fake.hvac_commands == []
        assert len(fake.datagrams) == 1

    @pytest.mark.asyncio
    async def test_get_state_rejects_invalid_record(self, fake_device_factory, device_info_for):
        """Test that an invalid record from the device is reported as malformed"""
        async with fake_device_factory(model_code=HVAC_MODEL_CODE) as fake:
            bad = bytearray(ClimateState().encode())
            bad[5] = 6 << 5
            fake.hvac_state = bytes(bad)
            device = HvacDevice(device_info_for(fake), timeout=SHORT_TIMEOUT, retries=0)
            await device.authenticate()

            with pytest.raises(ProtocolMalformedError):
                await device.get_state()

    @pytest.mark.asyncio
    async def test_get_info(self, fake_device_factory, device_info_for):
        """Test reading power and ambient temperature"""
        info = bytearray(22)
        info[1] = 0x01
        info[5] = 19
        info[21] = 8
        async with fake_device_factory(model_code=HVAC_MODEL_CODE) as fake:
            fake.hvac_info = bytes(info)
            device = HvacDevice(device_info_for(fake), timeout=SHORT_TIMEOUT, retries=0)
            await device.authenticate()

            result = await device.get_info()

        assert result.power is True
        assert result.ambient_temp == pytest.approx(19.8)

    @pytest.mark.asyncio
    async def test_requires_authentication(self, fake_device_factory, device_info_for):
        """Test that climate operations fail before authentication"""
        async with fake_device_factory(model_code=HVAC_MODEL_CODE) as fake:
            device = HvacDevice(device_info_for(fake), timeout=SHORT_TIMEOUT, retries=0)

            with pytest.raises(NotAuthenticatedError):
                await device.set_state(ClimateState())

        assert fake.datagrams == []
