import asyncio
import threading
import time

import pytest

from ledgerapdu.common import APDUAnswer, APDUCommand, APDUResponseCodes
from ledgerapdu.errors import BackendGone, BadRetcode
from ledgerapdu.hid import TransportNativeHID
from ledgerapdu.transport import Ledger, LedgerHandle

GET_APP_VERSION = APDUCommand(cla=0xE0, ins=0x06, p1=0x00, p2=0x00, data=b"")


class FakeTransport:
    def __init__(self, answer=b"\x01\x90\x00", error=None, delay=0.0):
        self.answer = answer
        self.error = error
        self.delay = delay
        self.calls = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def exchange(self, command):
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            time.sleep(self.delay)
            self.calls.append(command)
            if self.error is not None:
                raise self.error
            return APDUAnswer(self.answer)
        finally:
            with self._lock:
                self.active -= 1


class FakeDevice:
    def __init__(self, responses):
        self.responses = list(responses)
        self.writes = []

    def write(self, data):
        self.writes.append(bytes(data))
        return len(data)

    def read_timeout(self, size, timeout):
        return self.responses.pop(0)

    def get_manufacturer_string(self):
        return "Ledger"


def frames(answer, channel=0x0101):
    stream = len(answer).to_bytes(2, "big") + answer
    out = []
    for seq, start in enumerate(range(0, len(stream), 59)):
        chunk = stream[start:start + 59]
        packet = channel.to_bytes(2, "big") + b"\x05" + seq.to_bytes(2, "big") + chunk
        out.append(packet.ljust(64, b"\x00"))
    return out


@pytest.mark.asyncio
async def test_exchange_get_app_version_over_hid():
    device = FakeDevice(frames(b"\x01\x02\x03\x90\x00"))
    ledger = await Ledger.init(TransportNativeHID(device))
    try:
        result = await ledger.exchange(GET_APP_VERSION)
    finally:
        ledger.close()
    assert result.data() == b"\x01\x02\x03"
    assert result.response_status() is APDUResponseCodes.NO_ERROR
    assert "NO_ERROR" in str(result)
    assert device.writes[0][6:12] == b"\x00\x04\xe0\x06\x00\x00"


@pytest.mark.asyncio
async def test_ledger_exchange_passes_command():
    transport = FakeTransport()
    async with await Ledger.init(transport) as ledger:
        answer = await ledger.exchange(GET_APP_VERSION)
    assert answer == APDUAnswer(b"\x01\x90\x00")
    assert transport.calls == [GET_APP_VERSION]


@pytest.mark.asyncio
async def test_ledger_exchange_propagates_error():
    transport = FakeTransport(error=BadRetcode(APDUResponseCodes.WRONG_LENGTH))
    ledger = await Ledger.init(transport)
    with pytest.raises(BadRetcode) as info:
        await ledger.exchange(GET_APP_VERSION)
    ledger.close()
    assert info.value.code is APDUResponseCodes.WRONG_LENGTH


@pytest.mark.asyncio
async def test_exchange_after_close_is_backend_gone():
    ledger = await Ledger.init(FakeTransport())
    ledger.close()
    with pytest.raises(BackendGone):
        await ledger.exchange(GET_APP_VERSION)


@pytest.mark.asyncio
async def test_handle_serializes_exchanges_in_order():
    transport = FakeTransport(delay=0.01)
    commands = [APDUCommand(cla=0xE0, ins=i, p1=0, p2=0) for i in range(5)]
    with LedgerHandle.init(transport) as handle:
        answers = await asyncio.gather(*(handle.exchange(c) for c in commands))
    assert len(answers) == 5
    assert transport.calls == commands
    assert transport.max_active == 1


@pytest.mark.asyncio
async def test_handle_close_then_exchange():
    handle = LedgerHandle.init(FakeTransport())
    handle.close()
    with pytest.raises(BackendGone):
        await handle.exchange(GET_APP_VERSION)