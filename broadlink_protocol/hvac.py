#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
HvacDevice -- climate-control units that can report and accept a complete climate state.

All exchanges use an HVAC data message as the command payload (little-endian):

    0x00-0x01  length of the rest of the message, excluding the trailing checksum
    0x02-0x07  magic: 0x00BB, 0x8006, 0x0000
    0x08-0x09  data length (2 + length of the command data)
    0x0A-0x0B  command (0x0100 + (code << 4 | 1))
    0x0C-...   command data
    last 2     one's-complement checksum of everything after the first length field

The climate state is a 13-byte bit-packed record; see ClimateState.encode() for the layout.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import Enum, IntEnum

from .internal_types import *
from .pkg_logging import logger
from .device import BroadlinkDevice
from .exceptions import ProtocolMalformedError, ValidationError
from .util import compute_generic_checksum

HVAC_HEADER_SIZE = 12
HVAC_MAGIC = (0x00BB, 0x8006, 0x0000)
CLIMATE_STATE_SIZE = 13
CLIMATE_INFO_SIZE = 22

MIN_TARGET_TEMP = 16.0
MAX_TARGET_TEMP = 32.0

_HEADER = struct.Struct('<HHHHHH')

class HvacDataCommand(IntEnum):
    SET_STATE = 0x00
    GET_STATE = 0x01
    GET_AC_INFO = 0x02

class HvacMode(Enum):
    AUTO = 0
    COOL = 1
    DRY = 2
    HEAT = 3
    FAN = 4

class HvacSpeed(Enum):
    NONE = 0
    HIGH = 1
    MID = 2
    LOW = 3
    AUTO = 5

class HvacPreset(Enum):
    NORMAL = 0
    TURBO = 1
    MUTE = 2

class HvacSwingHorizontal(Enum):
    ON = 0
    OFF = 1
    LEFT_FIX = 2
    RIGHT_FLAP = 5
    RIGHT_FIX = 6
    LEFT_RIGHT_FIX = 7

class HvacSwingVertical(Enum):
    ON = 0
    POS1 = 1
    POS2 = 2
    POS3 = 3
    POS4 = 4
    POS5 = 5
    OFF = 7

_EnumT = TypeVar('_EnumT', bound=Enum)

def _to_enum(enum_type: Type[_EnumT], value: Union[_EnumT, int]) -> _EnumT:
    try:
        return enum_type(value)
    except ValueError:
        raise ValidationError(f"Invalid {enum_type.__name__} value: {value!r}") from None

def _decode_enum(enum_type: Type[_EnumT], value: int) -> _EnumT:
    try:
        return enum_type(value)
    except ValueError:
        raise ProtocolMalformedError(f"Device reported invalid {enum_type.__name__} value {value}") from None

def _validate_target_temp(temp: float) -> float:
    if not MIN_TARGET_TEMP <= temp <= MAX_TARGET_TEMP:
        raise ValidationError(f"Target temperature {temp} is out of range ({MIN_TARGET_TEMP}-{MAX_TARGET_TEMP})")
    if (temp * 2) != int(temp * 2):
        raise ValidationError(f"Target temperature {temp} is not a multiple of 0.5 degrees")
    return float(temp)

@dataclass
class ClimateState:
    """The complete state of a climate-control unit.

    The setters reject out-of-range values without modifying the state. Fields assigned directly
    are checked again by encode(), so an invalid state never reaches a device. HvacDevice.set_state()
    always sends every field.
    """

    power: bool = False
    mode: HvacMode = HvacMode.AUTO
    fan_speed: HvacSpeed = HvacSpeed.AUTO
    swing_v: HvacSwingVertical = HvacSwingVertical.OFF
    swing_h: HvacSwingHorizontal = HvacSwingHorizontal.OFF

    target_temp: float = 24.0
    """Target temperature in degrees Celsius, 16.0-32.0 in 0.5 degree steps."""

    preset: HvacPreset = HvacPreset.NORMAL

    sleep: bool = False

    ifeel: bool = False
    """Use the temperature measured by the remote control unit."""

    health: bool = False
    """Air cleaning (dust removal)."""

    clean: bool = False
    """Auto-clean of the indoor unit."""

    display: bool = True
    """Show the current temperature on the unit's display."""

    mildew: bool = False
    """Dry the indoor unit to prevent mildew."""

    def __post_init__(self) -> None:
        self.mode = _to_enum(HvacMode, self.mode)
        self.fan_speed = _to_enum(HvacSpeed, self.fan_speed)
        self.swing_v = _to_enum(HvacSwingVertical, self.swing_v)
        self.swing_h = _to_enum(HvacSwingHorizontal, self.swing_h)
        self.preset = _to_enum(HvacPreset, self.preset)
        self.target_temp = _validate_target_temp(self.target_temp)

    def set_target_temp(self, temp: float) -> None:
        """Sets the target temperature.

        Raises:
            ValidationError: temp is outside 16.0-32.0, or not a multiple of 0.5.
        """
        self.target_temp = _validate_target_temp(temp)

    def set_mode(self, mode: Union[HvacMode, int]) -> None:
        self.mode = _to_enum(HvacMode, mode)

    def set_fan_speed(self, fan_speed: Union[HvacSpeed, int]) -> None:
        self.fan_speed = _to_enum(HvacSpeed, fan_speed)

    def set_swing_v(self, swing_v: Union[HvacSwingVertical, int]) -> None:
        self.swing_v = _to_enum(HvacSwingVertical, swing_v)

    def set_swing_h(self, swing_h: Union[HvacSwingHorizontal, int]) -> None:
        self.swing_h = _to_enum(HvacSwingHorizontal, swing_h)

    def set_preset(self, preset: Union[HvacPreset, int]) -> None:
        self.preset = _to_enum(HvacPreset, preset)

    def encode(self) -> bytes:
        """Packs the state into the 13-byte record:

            byte 0   bits 7-3: target temperature - 8 (integer part), bits 2-0: vertical swing
            byte 1   bits 7-5: horizontal swing
            byte 2   bit 7: half-degree flag, bits 3-0: magic 0xF
            byte 3   bits 7-5: fan speed
            byte 4   bits 1-0: preset
            byte 5   bits 7-5: mode, bit 3: ifeel, bit 2: sleep
            byte 8   bit 5: power, bit 2: clean, bit 1: health
            byte 10  bit 4: display, bit 3: mildew

        Raises:
            ValidationError: a field holds a value outside its valid range.
        """
        target_temp = _validate_target_temp(self.target_temp)
        mode = _to_enum(HvacMode, self.mode)
        fan_speed = _to_enum(HvacSpeed, self.fan_speed)
        swing_v = _to_enum(HvacSwingVertical, self.swing_v)
        swing_h = _to_enum(HvacSwingHorizontal, self.swing_h)
        preset = _to_enum(HvacPreset, self.preset)
        temp_int = int(target_temp)
        half = target_temp != temp_int
        data = bytearray(CLIMATE_STATE_SIZE)
        data[0] = ((temp_int - 8) << 3) | swing_v.value
        data[1] = swing_h.value << 5
        data[2] = (0x80 if half else 0) | 0x0F
        data[3] = fan_speed.value << 5
        data[4] = preset.value
        data[5] = (mode.value << 5) | (int(self.ifeel) << 3) | (int(self.sleep) << 2)
        data[8] = (int(self.power) << 5) | (int(self.clean) << 2) | (int(self.health) << 1)
        data[10] = (int(self.display) << 4) | (int(self.mildew) << 3)
        return bytes(data)

    @classmethod
    def decode(cls, data: bytes) -> ClimateState:
        """Unpacks a state record reported by a device.

        Raises:
            ProtocolMalformedError: the record is short, or holds a value outside the valid range of its field.
        """
        if len(data) < CLIMATE_STATE_SIZE:
            raise ProtocolMalformedError(
                f"Climate state too short: expected {CLIMATE_STATE_SIZE} bytes, got {len(data)}"
              )
        target_temp = (data[0] >> 3) + 8 + (0.5 if data[2] & 0x80 else 0.0)
        if not MIN_TARGET_TEMP <= target_temp <= MAX_TARGET_TEMP:
            raise ProtocolMalformedError(f"Device reported out-of-range target temperature {target_temp}")
        return cls(
            power=bool(data[8] & 0x20),
            mode=_decode_enum(HvacMode, data[5] >> 5),
            fan_speed=_decode_enum(HvacSpeed, data[3] >> 5),
            swing_v=_decode_enum(HvacSwingVertical, data[0] & 0x07),
            swing_h=_decode_enum(HvacSwingHorizontal, data[1] >> 5),
            target_temp=target_temp,
            preset=_decode_enum(HvacPreset, data[4] & 0x03),
            sleep=bool(data[5] & 0x04),
            ifeel=bool(data[5] & 0x08),
            health=bool(data[8] & 0x02),
            clean=bool(data[8] & 0x04),
            display=bool(data[10] & 0x10),
            mildew=bool(data[10] & 0x08),
          )

@dataclass(frozen=True)
class ClimateInfo:
    """Basic readings from a climate-control unit."""

    power: bool
    ambient_temp: float
    """Ambient temperature in degrees Celsius, with 0.1 degree resolution."""

    @classmethod
    def decode(cls, data: bytes) -> ClimateInfo:
        if len(data) < CLIMATE_INFO_SIZE:
            raise ProtocolMalformedError(
                f"Climate info too short: expected {CLIMATE_INFO_SIZE} bytes, got {len(data)}"
              )
        ambient_temp = (data[5] & 0x1F) + (data[21] & 0x1F) / 10.0
        return cls(power=bool(data[1] & 0x01), ambient_temp=ambient_temp)

def pack_hvac_payload(command: HvacDataCommand, data: bytes=b'') -> bytes:
    """Builds an HVAC data message."""
    data_length = 2 + len(data)
    payload_length = data_length + 10
    if payload_length > 0xFFFF:
        raise ValidationError(f"HVAC data too long: {len(data)} bytes")
    result = bytearray(_HEADER.pack(
        payload_length,
        *HVAC_MAGIC,
        data_length,
        0x0100 + ((command << 4) | 1),
      ))
    result += data
    result += compute_generic_checksum(result[2:]).to_bytes(2, 'little')
    return bytes(result)

def unpack_hvac_payload(plaintext: bytes) -> bytes:
    """Validates a decrypted HVAC data reply and returns its command data. Trailing
       block padding is ignored.

    Raises:
        ProtocolMalformedError: the reply is truncated, inconsistent, or fails its checksum.
    """
    if len(plaintext) < HVAC_HEADER_SIZE + 2:
        raise ProtocolMalformedError(f"HVAC reply too short: {len(plaintext)} bytes")
    payload_length, _, _, _, data_length, _ = _HEADER.unpack_from(plaintext, 0)
    if len(plaintext) - 2 < payload_length or payload_length < HVAC_HEADER_SIZE:
        raise ProtocolMalformedError(
            f"HVAC reply length {payload_length} does not fit reply of {len(plaintext)} bytes"
          )
    if data_length < 2 or HVAC_HEADER_SIZE + data_length - 2 > payload_length:
        raise ProtocolMalformedError(f"HVAC reply data length {data_length} is inconsistent")
    expected = int.from_bytes(plaintext[payload_length:payload_length + 2], 'little')
    actual = compute_generic_checksum(plaintext[2:payload_length])
    if expected != actual:
        raise ProtocolMalformedError(f"HVAC reply checksum mismatch: expected {expected:#06x}, got {actual:#06x}")
    return bytes(plaintext[HVAC_HEADER_SIZE:HVAC_HEADER_SIZE + data_length - 2])

class HvacDevice(BroadlinkDevice):
    """A climate-control unit (air conditioner)."""

    friendly_type = "HVAC"

    async def send_hvac_command(self, command: HvacDataCommand, data: bytes=b'') -> bytes:
        """Sends an HVAC data message and returns the command data of the reply.

        Note: prefer get_state(), set_state() and get_info().
        """
        plaintext = await self.send_command(pack_hvac_payload(command, data))
        return unpack_hvac_payload(plaintext)

    async def get_state(self) -> ClimateState:
        """Reads the current climate state.

        Raises:
            ProtocolMalformedError: the reply could not be decoded.
        """
        data = await self.send_hvac_command(HvacDataCommand.GET_STATE)
        state = ClimateState.decode(data)
        logger.debug(f"{self} reported {state}")
        return state

    async def set_state(self, state: ClimateState) -> None:
        """Writes a complete climate state. Partial updates are not possible; read, modify and
           write back instead.

        Raises:
            DeviceRejectedError: the device refused the state.
        """
        await self.send_hvac_command(HvacDataCommand.SET_STATE, state.encode())
        logger.debug(f"{self} accepted {state}")

    async def get_info(self) -> ClimateInfo:
        """Reads the power state and ambient temperature."""
        data = await self.send_hvac_command(HvacDataCommand.GET_AC_INFO)
        return ClimateInfo.decode(data)
