"""Asynchronous access to a Ledger device through a dedicated worker thread."""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Protocol

from .common import APDUAnswer, APDUCommand
from .errors import BackendGone, LedgerError

log = logging.getLogger(__name__)


class _BlockingTransport(Protocol):
    def exchange(self, command: APDUCommand) -> APDUAnswer: ...


class LedgerHandle:
    """Owns a blocking transport and runs its exchanges one at a time.

    Exchanges are never interleaved: a single worker thread performs them
    in the order they were submitted.
    """

    def __init__(self, transport: _BlockingTransport) -> None:
        self._transport = transport
        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="ledger-exchange"
        )

    @classmethod
    def init(cls, transport: _BlockingTransport) -> LedgerHandle:
        """Start the worker for ``transport``."""
        return cls(transport)

    async def exchange(self, apdu: APDUCommand) -> APDUAnswer:
        """Send a command to the device and wait for its answer."""
        try:
            future = self._executor.submit(self._transport.exchange, apdu)
        except RuntimeError:
            raise BackendGone() from None
        return await asyncio.wrap_future(future)

    def close(self) -> None:
        """Stop the worker after pending exchanges have finished."""
        self._executor.shutdown(wait=True)

    def __enter__(self) -> LedgerHandle:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"LedgerHandle({self._transport!r})"


class Ledger:
    """A connection to a Ledger device. Only one should be active at a time."""

    def __init__(self, handle: LedgerHandle) -> None:
        self._handle = handle

    @classmethod
    async def init(cls, transport: _BlockingTransport) -> Ledger:
        """Open a connection over ``transport``."""
        return cls(LedgerHandle.init(transport))

    async def exchange(self, packet: APDUCommand) -> APDUAnswer:
        """Exchange one APDU with the device."""
        log.debug("dispatching APDU to device: %s", packet)
        try:
            answer = await self._handle.exchange(packet)
        except LedgerError as err:
            log.error("Error during communication: %s", err)
            raise
        data = answer.data()
        log.debug(
            "Received response from device: retcode=%d response=%s",
            answer.retcode(),
            None if data is None else data.hex(),
        )
        return answer

    def close(self) -> None:
        """Release the connection."""
        self._handle.close()

    async def __aenter__(self) -> Ledger:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"Ledger({self._handle!r})"