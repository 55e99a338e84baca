"""Multi-step conversations with a Ledger device."""

from __future__ import annotations

import abc
import logging
from typing import Any, Generic, TypeVar

from .errors import LedgerError

log = logging.getLogger(__name__)

T = TypeVar("T")


class LedgerProtocol(abc.ABC, Generic[T]):
    """A sequence of commands run against the device.

    If ``execute`` fails, ``recover`` is run to bring the app on the device
    back to a known state, and the original error is raised.
    """

    @abc.abstractmethod
    async def execute(self, transport: Any) -> T:
        """Send the protocol's commands and return its result."""

    async def recover(self, transport: Any) -> None:
        """Restore the device after a failure.

        Protocols that send several APDUs should override this; fetching a
        public key twice is a good way to reset the app.
        """

    async def run(self, transport: Any) -> T:
        """Execute the protocol, recovering if it fails."""
        try:
            return await self.execute(transport)
        except LedgerError as err:
            log.error("Protocol failed, running recovery: %s", err)
            try:
                await self.recover(transport)
            except LedgerError as recover_err:
                log.error("Recovery failed: %s", recover_err)
            raise