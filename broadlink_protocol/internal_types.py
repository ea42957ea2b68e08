#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Type hints used internally by this package"""

from __future__ import annotations

from typing import (
    Dict, List, Optional, Union, Any, TypeVar, Tuple, overload,
    Callable, Awaitable, Iterable, Iterator, AsyncIterator, AsyncIterable,
    Mapping, MutableMapping, Sequence, Set, Type, AsyncContextManager, TYPE_CHECKING,
  )

from types import TracebackType

from typing_extensions import Self

HostAndPort = Tuple[str, int]
"""An IPv4 (host, port) address pair as used by socket and asyncio datagram APIs."""

MacAddress = bytes
"""A 6-byte MAC address, in canonical (most significant byte first) order."""
