"""APDU command and response types."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import BinaryIO

from .errors import ResponseTooShort, UnknownAPDUCode

MAX_DATA_SIZE = 255


def _check_u8(name: str, value: int) -> None:
    if not 0 <= value <= 0xFF:
        raise ValueError(f"{name} must fit in one byte, got {value}")


class APDUResponseCodes(Enum):
    """Status words carried in the last two bytes of an APDU response."""

    NO_ERROR = 0x9000
    EXECUTION_ERROR = 0x6400
    WRONG_LENGTH = 0x6700
    UNLOCK_DEVICE_ERROR = 0x6804
    EMPTY_BUFFER = 0x6982
    OUTPUT_BUFFER_TOO_SMALL = 0x6983
    DATA_INVALID = 0x6984
    CONDITIONS_NOT_SATISFIED = 0x6985
    COMMAND_NOT_ALLOWED = 0x6986
    INVALID_DATA = 0x6A80
    INVALID_P1_P2 = 0x6B00
    INS_NOT_SUPPORTED = 0x6D00
    CLA_NOT_SUPPORTED = 0x6E00
    UNKNOWN = 0x6F00
    SIGN_VERIFY_ERROR = 0x6F01

    @classmethod
    def from_code(cls, code: int) -> APDUResponseCodes:
        """Look up a status word, raising UnknownAPDUCode if it is not known."""
        try:
            return cls(code)
        except ValueError:
            raise UnknownAPDUCode(code) from None

    def is_success(self) -> bool:
        return self is APDUResponseCodes.NO_ERROR

    def description(self) -> str:
        return _DESCRIPTIONS[self]

    def __str__(self) -> str:
        return f"Code {self.value:x} ({self.description()})"


_DESCRIPTIONS = {
    APDUResponseCodes.NO_ERROR: "[APDU_CODE_NOERROR]",
    APDUResponseCodes.EXECUTION_ERROR: (
        "[APDU_CODE_EXECUTION_ERROR] No information given (NV-Ram not changed)"
    ),
    APDUResponseCodes.WRONG_LENGTH: "[APDU_CODE_WRONG_LENGTH] Wrong length",
    APDUResponseCodes.UNLOCK_DEVICE_ERROR: (
        "[APDU_CODE_UNLOCK_DEVICE_ERROR] Device is locked"
    ),
    APDUResponseCodes.EMPTY_BUFFER: "[APDU_CODE_EMPTY_BUFFER]",
    APDUResponseCodes.OUTPUT_BUFFER_TOO_SMALL: "[APDU_CODE_OUTPUT_BUFFER_TOO_SMALL]",
    APDUResponseCodes.DATA_INVALID: (
        "[APDU_CODE_DATA_INVALID] data reversibly blocked (invalidated)"
    ),
    APDUResponseCodes.CONDITIONS_NOT_SATISFIED: (
        "[APDU_CODE_CONDITIONS_NOT_SATISFIED] Conditions of use not satisfied"
    ),
    APDUResponseCodes.COMMAND_NOT_ALLOWED: (
        "[APDU_CODE_COMMAND_NOT_ALLOWED] Command not allowed (no current EF)"
    ),
    APDUResponseCodes.INVALID_DATA: (
        "[APDU_CODE_INVALID_DATA] The parameters in the data field are incorrect"
    ),
    APDUResponseCodes.INVALID_P1_P2: (
        "[APDU_CODE_INVALIDP1P2] Wrong parameter(s) P1-P2"
    ),
    APDUResponseCodes.INS_NOT_SUPPORTED: (
        "[APDU_CODE_INS_NOT_SUPPORTED] Instruction code not supported or invalid. "
        "Hint: Is the correct application open on the device?"
    ),
    APDUResponseCodes.CLA_NOT_SUPPORTED: (
        "[APDU_CODE_CLA_NOT_SUPPORTED] Class not supported"
    ),
    APDUResponseCodes.UNKNOWN: "[APDU_CODE_UNKNOWN]",
    APDUResponseCodes.SIGN_VERIFY_ERROR: "[APDU_CODE_SIGN_VERIFY_ERROR]",
}


class APDUData:
    """APDU payload of at most 255 bytes; longer input is truncated."""

    __slots__ = ("_buf",)

    def __init__(self, buf: bytes | bytearray | Iterable[int] = b"") -> None:
        self._buf = bytes(buf)[:MAX_DATA_SIZE]

    def resize(self, new_size: int, fill_with: int = 0) -> None:
        """Truncate or pad the payload; the size is capped at 255 bytes."""
        if new_size < 0:
            raise ValueError(f"size must not be negative, got {new_size}")
        _check_u8("fill_with", fill_with)
        size = min(new_size, MAX_DATA_SIZE)
        if size <= len(self._buf):
            self._buf = self._buf[:size]
        else:
            self._buf += bytes([fill_with]) * (size - len(self._buf))

    def data(self) -> bytes:
        return self._buf

    def __bytes__(self) -> bytes:
        return self._buf

    def __len__(self) -> int:
        return len(self._buf)

    def __iter__(self) -> Iterator[int]:
        return iter(self._buf)

    def __getitem__(self, index):
        return self._buf[index]

    def __eq__(self, other: object) -> bool:
        if isinstance(other, APDUData):
            return self._buf == other._buf
        if isinstance(other, (bytes, bytearray, memoryview)):
            return self._buf == bytes(other)
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"APDUData({self._buf!r})"


@dataclass
class APDUCommand:
    """A command APDU sent to the device."""

    cla: int
    ins: int
    p1: int
    p2: int
    data: APDUData = field(default_factory=APDUData)
    response_len: int | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.data, APDUData):
            self.data = APDUData(self.data)
        for name in ("cla", "ins", "p1", "p2"):
            _check_u8(name, getattr(self, name))
        if self.response_len is not None:
            _check_u8("response_len", self.response_len)

    def serialized_length(self) -> int:
        length = 4
        if len(self.data):
            length += 1 + len(self.data)
        if self.response_len is not None:
            length += 1
        return length

    def serialize(self) -> bytes:
        out = bytearray((self.cla, self.ins, self.p1, self.p2))
        if len(self.data):
            out.append(len(self.data))
            out += bytes(self.data)
        if self.response_len is not None:
            out.append(self.response_len)
        return bytes(out)

    def write_to(self, stream: BinaryIO) -> int:
        """Write the serialized command to a binary stream; return its length."""
        stream.write(self.serialize())
        return self.serialized_length()

    def __str__(self) -> str:
        response_len = (
            "None" if self.response_len is None else f"Some({self.response_len})"
        )
        return (
            f"APDUCommand {{ cla: {self.cla}, ins: {self.ins}, p1: {self.p1}, "
            f"p2: {self.p2}, data: \"{bytes(self.data).hex()}\", "
            f"response_len: {response_len} }}"
        )


@dataclass(frozen=True)
class APDUAnswer:
    """A response APDU: payload followed by a two-byte status word."""

    response: bytes

    def __post_init__(self) -> None:
        response = bytes(self.response)
        if len(response) < 2:
            raise ResponseTooShort(response)
        object.__setattr__(self, "response", response)

    @classmethod
    def from_answer(cls, response: bytes | bytearray | Iterable[int]) -> APDUAnswer:
        return cls(bytes(response))

    def retcode(self) -> int:
        return int.from_bytes(self.response[-2:], "big")

    def response_status(self) -> APDUResponseCodes | None:
        """The status word as a known code, or None if it is not recognised."""
        try:
            return APDUResponseCodes.from_code(self.retcode())
        except UnknownAPDUCode:
            return None

    def is_success(self) -> bool:
        status = self.response_status()
        return status is not None and status.is_success()

    def data(self) -> bytes | None:
        """The payload without the status word, or None if the status is not success."""
        if self.is_success():
            return self.response[:-2]
        return None

    def __bytes__(self) -> bytes:
        return self.response

    def __len__(self) -> int:
        return len(self.response)

    def __str__(self) -> str:
        status = self.response_status()
        data = self.data()
        status_text = "None" if status is None else f"Some({status.name})"
        data_text = "None" if data is None else f"Some({list(data)})"
        return (
            f"APDUAnswer: {{\n\tResponse: {status_text} \n\tData: {data_text}\n}}"
        )