#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
BroadlinkSocket -- An async UDP socket that can:

  1. Send a datagram to a device (or to a broadcast address) and wait for a single reply,
     re-sending a bounded number of times on timeout
  2. Broadcast a datagram and collect every reply that arrives within a fixed listening window

  There is no background activity; a socket exists only for the duration of the exchange that
  created it, and is closed when its async context manager exits.
"""

from __future__ import annotations

import asyncio
import socket
import time

from .internal_types import *
from .pkg_logging import logger
from .constants import DEFAULT_TIMEOUT, DEFAULT_RETRIES
from .exceptions import BroadlinkError, TransportTimeout, TransportIoError

MAX_QUEUE_SIZE = 1000

_QueueItem = Union[Tuple[HostAndPort, bytes], BaseException]

class _BroadlinkSocketProtocol(asyncio.DatagramProtocol):
    """An adapter between the asyncio transport and BroadlinkSocket."""

    broadlink_socket: BroadlinkSocket

    def __init__(self, broadlink_socket: BroadlinkSocket):
        self.broadlink_socket = broadlink_socket

    def datagram_received(self, data: bytes, addr: Tuple[str, int]):
        """Called when some datagram is received."""
        self.broadlink_socket.datagram_received(addr, data)

    def error_received(self, exc: Exception):
        """Called when a send or receive operation raises an OSError.

        (Other than BlockingIOError or InterruptedError.)
        """
        self.broadlink_socket.error_received(exc)

    def connection_lost(self, exc: Optional[Exception]) -> None:
        """Called when the connection is lost or closed."""
        self.broadlink_socket.connection_lost(exc)


class BroadlinkSocket(AsyncContextManager['BroadlinkSocket']):
    """
    A bound, broadcast-capable UDP socket used for a single request/response exchange or a single
    broadcast-and-collect cycle.

    Usage:
        async with BroadlinkSocket(bind_address="192.168.1.10") as sock:
            src_addr, reply = await sock.send_and_receive(packet, ("192.168.1.50", 80))
    """

    bind_address: str
    """The local IP address to bind to. "0.0.0.0" binds to all interfaces."""

    bind_port: int
    """The local port to bind to. 0 selects an ephemeral port."""

    sock: Optional[socket.socket] = None
    """The low-level socket, once started."""

    transport: Optional[asyncio.DatagramTransport] = None
    """The asyncio transport bound to sock, once started."""

    queue: asyncio.Queue[_QueueItem]
    """Received datagrams (or transport errors) in arrival order."""

    closed: bool = False

    def __init__(self, bind_address: str="0.0.0.0", bind_port: int=0):
        self.bind_address = bind_address
        self.bind_port = bind_port
        self.queue = asyncio.Queue(MAX_QUEUE_SIZE)

    @property
    def unicast_addr(self) -> HostAndPort:
        """The local (ip, port) this socket is bound to."""
        if self.sock is None:
            raise BroadlinkError("BroadlinkSocket is not started")
        addr = self.sock.getsockname()
        return (addr[0], addr[1])

    async def start(self) -> None:
        loop = asyncio.get_running_loop()
        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
            try:
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
                sock.bind((self.bind_address, self.bind_port))
                sock.setblocking(False)
            except BaseException:
                sock.close()
                raise
            self.sock = sock
            untyped_transport, _ = await loop.create_datagram_endpoint(
                lambda: _BroadlinkSocketProtocol(self),
                sock=sock
              )
        except OSError as e:
            self.close()
            raise TransportIoError(f"Could not bind UDP socket to {self.bind_address}:{self.bind_port}: {e}") from e
        # asyncio datagram transports do not inherit from asyncio.DatagramTransport, but implement its interface.
        self.transport = untyped_transport # type: ignore[assignment]
        logger.debug(f"Started {self}")

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self.transport is not None:
            # the transport owns the socket once created, and closes it
            try:
                self.transport.close()
            except Exception as e:
                logger.error(f"Error closing transport on {self}: {e}")
            self.transport = None
            self.sock = None
        if self.sock is not None:
            try:
                self.sock.close()
            except OSError as e:
                logger.error(f"Error closing socket on {self}: {e}")
            self.sock = None

    def datagram_received(self, addr: Tuple[str, int], data: bytes) -> None:
        logger.debug(f"Received {len(data)} bytes on {self} from {addr}")
        try:
            self.queue.put_nowait(((addr[0], addr[1]), data))
        except asyncio.QueueFull:
            logger.warning(f"Queue full, dropping datagram from {addr} on {self}")

    def error_received(self, exc: Exception) -> None:
        logger.warning(f"Error received from transport {self}: {exc}")
        try:
            self.queue.put_nowait(exc)
        except asyncio.QueueFull:
            logger.warning(f"Queue full, dropping transport error on {self}: {exc}")

    def connection_lost(self, exc: Optional[Exception]) -> None:
        logger.debug(f"Connection to transport lost on {self}, exc={exc}")
        if exc is not None:
            self.error_received(exc)

    def sendto(self, data: bytes, addr: HostAndPort) -> None:
        if self.transport is None:
            raise TransportIoError(f"Attempt to send on a closed socket: {self}")
        logger.debug(f"Sending {len(data)} bytes via {self} to {addr}")
        try:
            self.transport.sendto(data, addr)
        except OSError as e:
            raise TransportIoError(f"Could not send datagram to {addr}: {e}") from e

    def _drain(self) -> None:
        while not self.queue.empty():
            self.queue.get_nowait()

    async def receive(self, timeout: float) -> Tuple[HostAndPort, bytes]:
        """Waits up to timeout seconds for the next datagram.

        Raises:
            TransportTimeout: nothing arrived in time.
            TransportIoError: the transport reported an error.
        """
        try:
            item = await asyncio.wait_for(self.queue.get(), timeout)
        except asyncio.TimeoutError:
            raise TransportTimeout(f"No datagram received within {timeout} seconds") from None
        if isinstance(item, BaseException):
            raise TransportIoError(f"Socket error on {self}: {item}") from item
        return item

    async def send_and_receive(
            self,
            data: bytes,
            addr: HostAndPort,
            timeout: float=DEFAULT_TIMEOUT,
            retries: int=DEFAULT_RETRIES,
            accept_any_source: bool=False,
          ) -> Tuple[HostAndPort, bytes]:
        """Sends one datagram and waits for one reply, re-sending the same datagram up to
           `retries` additional times if no reply arrives within `timeout` seconds.

        Parameters:
            data:              The datagram to send.
            addr:              The destination (ip, port).
            timeout:           Time (in seconds) to wait for a reply to each attempt.
            retries:           Number of additional attempts after the first one times out.
            accept_any_source: If True, the first reply from any address is accepted (used when
                                 sending to a broadcast address). Otherwise replies from other
                                 hosts are dropped.

        Returns:
            A tuple of (source address, reply bytes).

        Raises:
            TransportTimeout: no reply after all attempts.
            TransportIoError: a lower-level socket failure.
        """
        attempts = max(retries, 0) + 1
        for attempt in range(attempts):
            self._drain()
            self.sendto(data, addr)
            end_time = time.monotonic() + timeout
            while True:
                remaining_time = end_time - time.monotonic()
                if remaining_time <= 0.0:
                    break
                try:
                    src_addr, reply = await self.receive(remaining_time)
                except TransportTimeout:
                    break
                if accept_any_source or src_addr[0] == addr[0]:
                    return src_addr, reply
                logger.debug(f"Dropping reply from unexpected source {src_addr}; waiting for {addr}")
            logger.debug(f"Attempt {attempt + 1}/{attempts} to {addr} timed out after {timeout} seconds")
        raise TransportTimeout(f"No reply from {addr[0]}:{addr[1]} after {attempts} attempts")

    async def broadcast_and_collect(
            self,
            data: bytes,
            addr: HostAndPort,
            wait_time: float,
            ignore_errors: bool=False,
          ) -> AsyncIterator[Tuple[HostAndPort, bytes]]:
        """Sends one datagram (typically to a broadcast address) and yields every reply that
           arrives within wait_time seconds. It is possible to exit the loop early.

        If ignore_errors is True, transport errors reported during the window are logged and
        collection continues; otherwise they raise TransportIoError.
        """
        self._drain()
        self.sendto(data, addr)
        end_time = time.monotonic() + wait_time
        while True:
            remaining_time = end_time - time.monotonic()
            if remaining_time <= 0.0:
                break
            try:
                item = await self.receive(remaining_time)
            except TransportTimeout:
                break
            except TransportIoError as e:
                if not ignore_errors:
                    raise
                logger.warning(f"Ignoring transport error while collecting replies: {e}")
                continue
            yield item

    def __str__(self) -> str:
        if self.sock is None:
            return f"BroadlinkSocket({self.bind_address}:{self.bind_port})"
        return f"BroadlinkSocket({self.unicast_addr[0]}:{self.unicast_addr[1]})"

    def __repr__(self) -> str:
        return str(self)

    async def __aenter__(self) -> Self:
        await self.start()
        return self

    async def __aexit__(
            self,
            exc_type: Optional[type[BaseException]],
            exc: Optional[BaseException],
            tb: Optional[TracebackType]
      ) -> bool:
        self.close()
        return False


async def send_and_receive(
        data: bytes,
        addr: HostAndPort,
        timeout: float=DEFAULT_TIMEOUT,
        retries: int=DEFAULT_RETRIES,
        bind_address: str="0.0.0.0",
        accept_any_source: bool=False,
      ) -> bytes:
    """Binds a fresh socket, performs one request/response exchange (see BroadlinkSocket.send_and_receive),
       closes the socket, and returns the reply bytes."""
    async with BroadlinkSocket(bind_address=bind_address) as sock:
        _, reply = await sock.send_and_receive(
            data,
            addr,
            timeout=timeout,
            retries=retries,
            accept_any_source=accept_any_source,
          )
        return reply
