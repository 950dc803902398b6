"""Paired byte-message channel between sponsor and enrollee.

The runners only need an ordered, exactly-once, bidirectional transport:

  send(bytes)       enqueue one message for the peer
  receive() → bytes next message from the peer, FIFO
  close()           tear the session down

Production sessions use magic-wormhole (code-based PAKE, mailbox relay).
Twisted runs on the asyncio loop through ``asyncioreactor`` so the runners
stay plain ``async`` code. ``loopback_pair()`` gives two in-memory ends with
the same semantics for tests and local dry runs.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Any, Protocol

from soanm.config import SessionConfig
from soanm.errors import ChannelError

logger = logging.getLogger(__name__)


class SecureChannel(Protocol):
    """Protocol for session channels — magic-wormhole or loopback."""

    async def send(self, data: bytes) -> None:
        ...

    async def receive(self) -> bytes:
        ...

    async def close(self) -> None:
        ...


class _ClosingContext:
    """``async with`` support: close on exit, never masking the body's error."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            await self.close()
            return
        try:
            await self.close()
        except ChannelError as close_exc:
            logger.debug("Error closing channel after failure: %s", close_exc)


# ── Loopback ──────────────────────────────────────────────────────

_CLOSED = object()


class LoopbackChannel(_ClosingContext):
    """One end of an in-memory channel pair."""

    def __init__(self, inbox: asyncio.Queue, outbox: asyncio.Queue, name: str = "") -> None:
        self.name = name
        self._inbox = inbox
        self._outbox = outbox
        self._closed = False
        self._peer_closed = False
        self.sent = 0
        self.received = 0

    async def send(self, data: bytes) -> None:
        if self._closed:
            raise ChannelError(f"{self.name or 'channel'}: send on closed channel")
        if self._peer_closed:
            raise ChannelError(f"{self.name or 'channel'}: peer closed the session")
        await self._outbox.put(bytes(data))
        self.sent += 1

    async def receive(self) -> bytes:
        if self._closed:
            raise ChannelError(f"{self.name or 'channel'}: receive on closed channel")
        if self._peer_closed:
            raise ChannelError(f"{self.name or 'channel'}: peer closed the session")
        item = await self._inbox.get()
        if item is _CLOSED:
            self._peer_closed = True
            raise ChannelError(f"{self.name or 'channel'}: peer closed the session")
        self.received += 1
        return item

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._outbox.put(_CLOSED)

    @property
    def closed(self) -> bool:
        return self._closed


def loopback_pair() -> tuple[LoopbackChannel, LoopbackChannel]:
    """Return ``(sponsor_end, enrollee_end)`` wired to each other."""
    to_enrollee: asyncio.Queue = asyncio.Queue()
    to_sponsor: asyncio.Queue = asyncio.Queue()
    sponsor_end = LoopbackChannel(to_sponsor, to_enrollee, name="sponsor")
    enrollee_end = LoopbackChannel(to_enrollee, to_sponsor, name="enrollee")
    return sponsor_end, enrollee_end


# ── Magic wormhole ────────────────────────────────────────────────


class WormholeChannel(_ClosingContext):
    """Real channel backed by a magic-wormhole ``IWormhole`` object."""

    def __init__(self, wormhole: Any) -> None:
        self._w = wormhole
        self._closed = False

    async def send(self, data: bytes) -> None:
        from wormhole.errors import WormholeError

        try:
            self._w.send_message(bytes(data))
        except WormholeError as exc:
            raise ChannelError(_describe(exc)) from exc

    async def receive(self) -> bytes:
        return await _wait(self._w.get_message())

    async def established(self) -> None:
        """Wait until key agreement with the peer has been confirmed."""
        versions = await _wait(self._w.get_versions())
        logger.debug("Peer versions: %s", versions)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await _wait(self._w.close())


class PendingChannel:
    """A wormhole with an allocated code, waiting for the enrollee to join."""

    def __init__(self, code: str, channel: WormholeChannel) -> None:
        self.code = code
        self._channel = channel

    async def wait(self) -> WormholeChannel:
        try:
            await self._channel.established()
        except ChannelError:
            await _abandon(self._channel)
            raise
        logger.info("Enrollee connected")
        return self._channel


async def connect_with_code(
    code: str, config: SessionConfig | None = None
) -> WormholeChannel:
    """Join the session behind *code* and wait for key agreement."""
    config = config or SessionConfig.from_env()
    reactor = _asyncio_reactor()
    import wormhole

    w = wormhole.create(config.app_id, config.relay_url, reactor)
    channel = WormholeChannel(w)
    try:
        w.set_code(code)
        await channel.established()
    except ChannelError:
        await _abandon(channel)
        raise
    logger.info("Connected to sponsor via %s", config.relay_url)
    return channel


async def connect_without_code(
    passphrase_length: int | None = None, config: SessionConfig | None = None
) -> tuple[str, PendingChannel]:
    """Allocate a fresh code; the channel resolves once a peer uses it."""
    config = config or SessionConfig.from_env()
    length = passphrase_length or config.passphrase_length
    reactor = _asyncio_reactor()
    import wormhole

    w = wormhole.create(config.app_id, config.relay_url, reactor)
    channel = WormholeChannel(w)
    w.allocate_code(length)
    try:
        code = await _wait(w.get_code())
    except ChannelError:
        await _abandon(channel)
        raise
    logger.info("Allocated %d-word code on %s", length, config.relay_url)
    return code, PendingChannel(code, channel)


# ── Helpers ───────────────────────────────────────────────────────


def _asyncio_reactor():
    """Install Twisted's asyncio reactor on the running loop (once)."""
    loop = asyncio.get_running_loop()
    if "twisted.internet.reactor" not in sys.modules:
        from twisted.internet import asyncioreactor

        asyncioreactor.install(loop)
    from twisted.internet import reactor

    if not reactor.running:
        reactor.startRunning(installSignalHandlers=False)
    return reactor


async def _wait(deferred) -> Any:
    """Await a Twisted Deferred, mapping wormhole failures to ChannelError."""
    from wormhole.errors import WormholeError

    try:
        return await deferred.asFuture(asyncio.get_running_loop())
    except WormholeError as exc:
        raise ChannelError(_describe(exc)) from exc


async def _abandon(channel: WormholeChannel) -> None:
    try:
        await channel.close()
    except ChannelError as exc:
        logger.debug("Error closing abandoned wormhole: %s", exc)


def _describe(exc: Exception) -> str:
    detail = str(exc)
    return f"{type(exc).__name__}: {detail}" if detail else type(exc).__name__
