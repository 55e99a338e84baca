"""HID framing and a transport for Ledger hardware wallets.

The transport works with any HID device object that offers
``write(data) -> int``, ``read_timeout(size, timeout) -> bytes`` and
``get_manufacturer_string() -> str | None``. Device descriptions offer
``vendor_id``, ``usage_page`` and ``open()``, which returns such a device.
"""

from __future__ import annotations

import logging
import sys
import threading
from collections.abc import Iterable, Iterator
from typing import Any, Protocol

from .common import APDUAnswer, APDUCommand
from .errors import (
    BadRetcode,
    CantOpen,
    CommError,
    DeviceNotFound,
    NativeTransportError,
    SequenceMismatch,
)

log = logging.getLogger(__name__)

LEDGER_VID = 0x2C97
LEDGER_USAGE_PAGE = 0xFFA0
LEDGER_CHANNEL = 0x0101
# One leading 0x00 byte is sent for Windows compatibility, so 64 bytes of
# payload travel in each 65-byte write.
LEDGER_PACKET_WRITE_SIZE = 65
LEDGER_PACKET_READ_SIZE = 64
LEDGER_TIMEOUT = 10_000_000

_TAG_APDU = 0x05
_WRITE_HEADER_SIZE = 6
_READ_HEADER_SIZE = 5
_ON_LINUX = sys.platform.startswith("linux")


class _HidDevice(Protocol):
    def write(self, data: bytes) -> int: ...

    def read_timeout(self, size: int, timeout: int) -> bytes: ...

    def get_manufacturer_string(self) -> str | None: ...


class _HidDeviceInfo(Protocol):
    vendor_id: int
    usage_page: int

    def open(self) -> _HidDevice: ...


def _resolve_linux(linux: bool | None) -> bool:
    return _ON_LINUX if linux is None else linux


def is_ledger(info: _HidDeviceInfo, linux: bool | None = None) -> bool:
    """True if the device description belongs to a Ledger.

    On Linux only the vendor id is checked; elsewhere the usage page must
    match as well.
    """
    if info.vendor_id != LEDGER_VID:
        return False
    return _resolve_linux(linux) or info.usage_page == LEDGER_USAGE_PAGE


def list_ledgers(
    devices: Iterable[_HidDeviceInfo], linux: bool | None = None
) -> Iterator[_HidDeviceInfo]:
    """Yield the Ledger devices among ``devices``, in order."""
    linux = _resolve_linux(linux)
    return (info for info in devices if is_ledger(info, linux))


def _open_device(info: _HidDeviceInfo) -> _HidDevice:
    try:
        return info.open()
    except OSError as exc:
        raise CantOpen(exc) from exc


def first_ledger(
    devices: Iterable[_HidDeviceInfo], linux: bool | None = None
) -> _HidDevice:
    """Open the first Ledger found among ``devices``."""
    info = next(list_ledgers(devices, linux), None)
    if info is None:
        raise DeviceNotFound()
    return _open_device(info)


def _chunks(data: bytes, size: int) -> Iterator[bytes]:
    for start in range(0, len(data), size):
        yield data[start:start + size]


def write_apdu(device: _HidDevice, channel: int, apdu_command: bytes) -> None:
    """Frame a serialized APDU into HID packets and write them to the device."""
    apdu_command = bytes(apdu_command)
    log.debug(
        "Writing APDU to device: apdu=%s bytes=%d", apdu_command.hex(), len(apdu_command)
    )
    in_data = (len(apdu_command) & 0xFFFF).to_bytes(2, "big") + apdu_command

    # The buffer is reused between packets; byte 0 stays 0x00.
    buffer = bytearray(LEDGER_PACKET_WRITE_SIZE)
    buffer[1:3] = (channel & 0xFFFF).to_bytes(2, "big")
    buffer[3] = _TAG_APDU

    chunk_size = LEDGER_PACKET_WRITE_SIZE - _WRITE_HEADER_SIZE
    for sequence_idx, chunk in enumerate(_chunks(in_data, chunk_size)):
        buffer[4:6] = (sequence_idx & 0xFFFF).to_bytes(2, "big")
        buffer[_WRITE_HEADER_SIZE:_WRITE_HEADER_SIZE + len(chunk)] = chunk
        log.debug(
            "Writing chunk to device: buffer=%s sequence_idx=%d bytes=%d",
            buffer.hex(),
            sequence_idx,
            len(chunk),
        )
        try:
            written = device.write(bytes(buffer))
        except OSError as exc:
            raise NativeTransportError(f"HID error: {exc}") from exc
        if written < len(buffer):
            raise CommError("USB write error. Could not send whole message")


def _read_packet(device: _HidDevice) -> bytes:
    try:
        packet = device.read_timeout(LEDGER_PACKET_READ_SIZE, LEDGER_TIMEOUT)
    except OSError as exc:
        raise NativeTransportError(f"HID error: {exc}") from exc
    return bytes(packet)[:LEDGER_PACKET_READ_SIZE]


def read_response_apdu(device: _HidDevice, channel: int) -> bytes:
    """Read HID packets until a whole response APDU has arrived.

    The channel of incoming packets is not checked.
    """
    buffer = bytearray(LEDGER_PACKET_READ_SIZE)
    sequence_idx = 0
    expected_len = 0
    answer = bytearray()

    while True:
        log.debug(
            "Reading response from device: sequence_idx=%d expected=%d answer_size=%d",
            sequence_idx,
            expected_len,
            len(answer),
        )
        packet = _read_packet(device)
        received = len(packet)
        # The first packet also carries the two-byte response length.
        if (sequence_idx == 0 and received < 7) or received < _READ_HEADER_SIZE:
            raise CommError("Read error. Incomplete header")
        buffer[:received] = packet

        rcv_seq_idx = int.from_bytes(buffer[3:5], "big")
        if rcv_seq_idx != sequence_idx:
            raise SequenceMismatch(rcv_seq_idx, sequence_idx)

        position = _READ_HEADER_SIZE
        if rcv_seq_idx == 0:
            expected_len = int.from_bytes(buffer[5:7], "big")
            position = 7
            log.debug("Received response length from device: %d", expected_len)

        take = min(len(buffer) - position, expected_len - len(answer))
        answer += buffer[position:position + take]

        if len(answer) >= expected_len:
            return bytes(answer)
        sequence_idx += 1


class TransportNativeHID:
    """Blocking APDU exchange over one opened HID device."""

    def __init__(self, device: _HidDevice) -> None:
        self._device = device
        self._lock = threading.Lock()

    @classmethod
    def open_all_devices(
        cls, devices: Iterable[_HidDeviceInfo], linux: bool | None = None
    ) -> list[TransportNativeHID]:
        """Open every Ledger among ``devices``."""
        opened = [_open_device(info) for info in list_ledgers(devices, linux)]
        return [cls(device) for device in opened]

    def get_manufacturer_string(self) -> str | None:
        """The manufacturer string, or None if there is none or it cannot be read."""
        with self._lock:
            try:
                return self._device.get_manufacturer_string()
            except OSError:
                return None

    def exchange(self, command: APDUCommand) -> APDUAnswer:
        """Send a command and return the answer.

        Raises BadRetcode when the device answers with a known error status.
        """
        with self._lock:
            write_apdu(self._device, LEDGER_CHANNEL, command.serialize())
            raw = read_response_apdu(self._device, LEDGER_CHANNEL)

        answer = APDUAnswer.from_answer(raw)
        status = answer.response_status()
        if status is not None and not status.is_success():
            raise BadRetcode(status)
        return answer

    def __repr__(self) -> str:
        return "TransportNativeHID()"

    def __getstate__(self) -> Any:
        raise TypeError("TransportNativeHID cannot be pickled")