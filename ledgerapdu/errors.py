"""Exceptions raised while talking to a Ledger device."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any


class LedgerError(Exception):
    """Base class for every error raised by this package."""


class ResponseTooShort(LedgerError):
    """The device answered with fewer than the two status bytes."""

    def __init__(self, response: Iterable[int]) -> None:
        self.response = bytes(response)
        super().__init__(
            "Response too short. Expected at least 2 bytes. "
            f"Got {list(self.response)}"
        )


class BadRetcode(LedgerError):
    """The device answered with a known, non-success status code."""

    def __init__(self, code: Any) -> None:
        self.code = code
        super().__init__(f"Ledger device: APDU Response error `{code!s}`")


class UnknownAPDUCode(LedgerError):
    """The device answered with a status code that is not recognised."""

    def __init__(self, code: int) -> None:
        self.code = code
        super().__init__(
            f"Ledger returned an unknown response status code {code:x}. "
            "This is a bug."
        )


class BackendGone(LedgerError):
    """The worker that owns the device connection has stopped."""

    def __init__(self) -> None:
        super().__init__("The backend has been disconnected.")


class NativeTransportError(LedgerError):
    """Base class for errors of the native HID transport."""


class DeviceNotFound(NativeTransportError):
    """No Ledger device is connected."""

    def __init__(self) -> None:
        super().__init__("Ledger device not found")


class CantOpen(NativeTransportError):
    """The device was found but could not be opened."""

    def __init__(self, reason: object) -> None:
        self.reason = reason
        super().__init__(
            f"Error opening device. {reason}. Hint: This usually means that the "
            "device is already in use by another transport instance."
        )


class SequenceMismatch(NativeTransportError):
    """A response packet arrived with an unexpected sequence index."""

    def __init__(self, got: int, expected: int) -> None:
        self.got = got
        self.expected = expected
        super().__init__(
            f"Sequence mismatch. Got {got} from device. Expected {expected}"
        )


class CommError(NativeTransportError):
    """Low level communication with the device failed."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Ledger device: communication error `{message}`")