# ledgerapdu

This package handles the APDU layer of Ledger hardware wallets. It has five modules:

- `ledgerapdu.common` holds the APDU commands (`APDUCommand`, `APDUData`), the
  answers (`APDUAnswer`) and the known status words (`APDUResponseCodes`).
- `ledgerapdu.hid` does the Ledger HID framing. `write_apdu` splits a serialized
  command into 65-byte writes. Each write starts with a `0x00` byte and carries a
  channel/tag/sequence header. The command goes out with a two-byte length prefix
  in front of it. `read_response_apdu` reads 64-byte packets and joins them into
  the full response. It raises `SequenceMismatch` when a packet arrives out of
  order. `TransportNativeHID` wraps one device object that you supply.
- `ledgerapdu.transport` holds `LedgerHandle`, which runs exchanges on a single
  worker thread, one at a time and in the order they were submitted. `Ledger` is
  the asynchronous front end on top of it.
- `ledgerapdu.protocol` holds `LedgerProtocol`, an abstract base class for
  multi-step exchanges. `run` awaits `execute`. If that raises a `LedgerError`,
  `run` awaits `recover` and then raises the original error again.
- `ledgerapdu.errors` holds `LedgerError` and its subclasses: `ResponseTooShort`,
  `BadRetcode`, `UnknownAPDUCode`, `BackendGone`, `NativeTransportError`,
  `DeviceNotFound`, `CantOpen`, `SequenceMismatch` and `CommError`.

## Installation

```
pip install .
```

## Building a command

`APDUData` keeps at most 255 bytes and cuts longer input short. `cla`, `ins`,
`p1`, `p2` and `response_len` must each fit in one byte. If they do not,
`ValueError` is raised.

```python
from ledgerapdu.common import APDUCommand, APDUData

command = APDUCommand(cla=0xE0, ins=0x01, p1=0x00, p2=0x00,
                      data=APDUData(bytes([0, 0, 0, 1, 0, 0, 0, 1])))
command.serialize()
# b'\xe0\x01\x00\x00\x08\x00\x00\x00\x01\x00\x00\x00\x01'
command.serialized_length()
# 13
```

`write_to(stream)` writes the same bytes to a binary stream and returns how many
bytes it wrote.

## Reading an answer

```python
from ledgerapdu.common import APDUAnswer, APDUResponseCodes

answer = APDUAnswer.from_answer(b"\x01\x02\x90\x00")
answer.is_success()        # True
answer.retcode()           # 36864 (0x9000)
answer.data()              # b'\x01\x02'
answer.response_status()   # APDUResponseCodes.NO_ERROR
```

An answer shorter than two bytes raises `ResponseTooShort`. If the status word is
not in the table, `response_status()` returns `None`, and so does `data()`.
`APDUResponseCodes.from_code(code)` raises `UnknownAPDUCode` for such a word.

## Exchanging with a device

`TransportNativeHID` works with any device object that has these three methods:

- `write(data) -> int`
- `read_timeout(size, timeout) -> bytes`
- `get_manufacturer_string() -> str | None`

Its `exchange` method raises `BadRetcode` when the device answers with a known
error status.

`hid.first_ledger(devices)` and `TransportNativeHID.open_all_devices(devices)`
take device descriptions. Each description needs a `vendor_id`, a `usage_page`
and an `open()` method. A Ledger has vendor id `0x2c97`. Off Linux, its usage
page must also be `0xffa0`. To choose which check applies, pass `linux=True` or
`linux=False`. `first_ledger` raises `DeviceNotFound` when no Ledger is among
the descriptions. If `open()` raises `OSError`, it is reported as `CantOpen`.

```python
from ledgerapdu.common import APDUCommand
from ledgerapdu.hid import TransportNativeHID
from ledgerapdu.transport import Ledger

async def app_version(transport: TransportNativeHID) -> bytes | None:
    async with await Ledger.init(transport) as ledger:
        answer = await ledger.exchange(APDUCommand(cla=0xE0, ins=0x06, p1=0, p2=0))
        return answer.data()
```

Once a `LedgerHandle` is closed, `exchange` raises `BackendGone`.

## Multi-step protocols

```python
from ledgerapdu.protocol import LedgerProtocol

class GetVersion(LedgerProtocol[bytes | None]):
    async def execute(self, transport):
        answer = await transport.exchange(APDUCommand(cla=0xE0, ins=0x06, p1=0, p2=0))
        return answer.data()

version = await GetVersion().run(ledger)
```

## What this package does not do

- It contains no USB or HID driver and does not enumerate devices. You must
  supply the device descriptions and the opened device objects.
- It provides no command-line tool.

## Running the tests

```
pip install .[test]
pytest
```