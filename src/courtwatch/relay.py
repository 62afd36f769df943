"""
Local unauthenticated SOCKS5 relay in front of an authenticated SOCKS5 upstream.

Chromium не умеет SOCKS5 с логином/паролем, поэтому поднимаем локальный
SOCKS5 без авторизации на 127.0.0.1, а каждое CONNECT-соединение
туннелируем через upstream с учётными данными (python-socks).
"""

from __future__ import annotations

import asyncio
import ipaddress
import logging
import struct
from typing import Optional, Set

from python_socks.async_.asyncio import Proxy

logger = logging.getLogger(__name__)


SOCKS_VERSION = 5
METHOD_NO_AUTH = 0
METHOD_NOT_ACCEPTABLE = 0xFF
CMD_CONNECT = 1
ATYP_IPV4 = 1
ATYP_DOMAIN = 3
ATYP_IPV6 = 4

REPLY_OK = 0
REPLY_GENERAL_FAILURE = 1
REPLY_HOST_UNREACHABLE = 4
REPLY_COMMAND_NOT_SUPPORTED = 7
REPLY_ADDRESS_NOT_SUPPORTED = 8


class SocksRelay:
    """SOCKS5 server on localhost that forwards CONNECTs through ``upstream_url``."""

    def __init__(self, upstream_url: str, *, host: str = "127.0.0.1", connect_timeout: float = 15.0) -> None:
        self.upstream_url = upstream_url
        self.host = host
        self.connect_timeout = connect_timeout
        self._server: Optional[asyncio.AbstractServer] = None
        self._tasks: Set[asyncio.Task[None]] = set()
        self.port: Optional[int] = None

    @property
    def address(self) -> str:
        if self.port is None:
            raise RuntimeError("Relay is not started")
        return f"socks5://{self.host}:{self.port}"

    async def start(self) -> str:
        self._server = await asyncio.start_server(self._handle, self.host, 0)
        self.port = self._server.sockets[0].getsockname()[1]
        logger.info("SOCKS5 relay listening on %s", self.address)
        return self.address

    async def close(self) -> None:
        if self._server is None:
            return
        self._server.close()
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        await self._server.wait_closed()
        logger.info("SOCKS5 relay on port %s closed", self.port)
        self._server = None

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        task = asyncio.current_task()
        if task is not None:
            self._tasks.add(task)
        try:
            target = await self._handshake(reader, writer)
            if target is None:
                return
            host, port = target
            try:
                proxy = Proxy.from_url(self.upstream_url, rdns=True)
                sock = await proxy.connect(dest_host=host, dest_port=port, timeout=self.connect_timeout)
                up_reader, up_writer = await asyncio.open_connection(sock=sock)
            except Exception as e:  # noqa: BLE001
                logger.debug("Upstream connect to %s:%s failed: %s", host, port, e)
                await self._reply(writer, REPLY_HOST_UNREACHABLE)
                return
            await self._reply(writer, REPLY_OK)
            try:
                await asyncio.gather(
                    self._pipe(reader, up_writer),
                    self._pipe(up_reader, writer),
                )
            finally:
                up_writer.close()
        except (asyncio.IncompleteReadError, ConnectionError) as e:
            logger.debug("Relay client dropped: %s", e)
        finally:
            writer.close()
            if task is not None:
                self._tasks.discard(task)

    async def _handshake(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> Optional[tuple[str, int]]:
        version, n_methods = await reader.readexactly(2)
        if version != SOCKS_VERSION:
            return None
        methods = await reader.readexactly(n_methods)
        # Только "без авторизации": relay слушает лишь localhost
        if METHOD_NO_AUTH not in methods:
            writer.write(bytes([SOCKS_VERSION, METHOD_NOT_ACCEPTABLE]))
            await writer.drain()
            return None
        writer.write(bytes([SOCKS_VERSION, METHOD_NO_AUTH]))
        await writer.drain()

        version, cmd, _reserved, atyp = await reader.readexactly(4)
        if cmd != CMD_CONNECT:
            await self._reply(writer, REPLY_COMMAND_NOT_SUPPORTED)
            return None
        if atyp == ATYP_IPV4:
            host = str(ipaddress.IPv4Address(await reader.readexactly(4)))
        elif atyp == ATYP_IPV6:
            host = str(ipaddress.IPv6Address(await reader.readexactly(16)))
        elif atyp == ATYP_DOMAIN:
            length = (await reader.readexactly(1))[0]
            raw = await reader.readexactly(length)
            try:
                host = raw.decode("idna")
            except UnicodeError:
                logger.debug("Malformed domain in CONNECT: %r", raw)
                await self._reply(writer, REPLY_ADDRESS_NOT_SUPPORTED)
                return None
        else:
            await self._reply(writer, REPLY_ADDRESS_NOT_SUPPORTED)
            return None
        (port,) = struct.unpack("!H", await reader.readexactly(2))
        return host, port

    @staticmethod
    async def _reply(writer: asyncio.StreamWriter, code: int) -> None:
        writer.write(bytes([SOCKS_VERSION, code, 0, ATYP_IPV4, 0, 0, 0, 0, 0, 0]))
        await writer.drain()

    @staticmethod
    async def _pipe(src: asyncio.StreamReader, dst: asyncio.StreamWriter) -> None:
        try:
            while True:
                chunk = await src.read(65536)
                if not chunk:
                    break
                dst.write(chunk)
                await dst.drain()
        except ConnectionError:
            pass
        finally:
            if dst.can_write_eof():
                try:
                    dst.write_eof()
                except OSError:
                    pass


__all__ = ["SocksRelay"]
