#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Maps a device type code to the device class that supports it.
"""

from __future__ import annotations

from .internal_types import *
from .pkg_logging import logger
from .device import BroadlinkDevice, DeviceInfo
from .hvac import HvacDevice
from .remote import RemoteDevice

DEVICE_TYPES: Dict[int, Tuple[Type[BroadlinkDevice], str]] = {
    0x6026: (RemoteDevice, "RM4 Pro"),
    0x6184: (RemoteDevice, "RMC4 Pro"),
    0x61A2: (RemoteDevice, "RM4 Pro"),
    0x649B: (RemoteDevice, "RM4 Pro"),
    0x653C: (RemoteDevice, "RM4 Pro"),
    0x4E2A: (HvacDevice, "Licensed manufacturer"),
  }
"""Supported device type codes, with the class and friendly model name of each."""

def get_device_class(model_code: int) -> Type[BroadlinkDevice]:
    """Returns the device class for a type code. Unknown codes get the generic BroadlinkDevice."""
    entry = DEVICE_TYPES.get(model_code)
    return BroadlinkDevice if entry is None else entry[0]

def create_device(info: DeviceInfo, **kwargs: Any) -> BroadlinkDevice:
    """Creates a device of the class matching info.model_code, filling in the friendly
       type and model names of info.

    Parameters:
        info:    The identity of the device.
        kwargs:  Additional keyword arguments for the device constructor (timeout, retries, bind_address).
    """
    entry = DEVICE_TYPES.get(info.model_code)
    if entry is None:
        logger.debug(f"Unrecognized device type {info.model_code:#06x}; using generic device")
        cls: Type[BroadlinkDevice] = BroadlinkDevice
    else:
        cls, info.friendly_model = entry
    info.friendly_type = cls.friendly_type
    return cls(info, **kwargs)
