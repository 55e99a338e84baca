import logging

import pytest

from ledgerapdu.common import APDUAnswer, APDUCommand, APDUResponseCodes
from ledgerapdu.errors import BackendGone, BadRetcode, CommError
from ledgerapdu.protocol import LedgerProtocol
from ledgerapdu.transport import Ledger


class Recording(LedgerProtocol):
    def __init__(self, result=None, error=None, recover_error=None):
        self.result = result
        self.error = error
        self.recover_error = recover_error
        self.recovered = []

    async def execute(self, transport):
        if self.error is not None:
            raise self.error
        return self.result

    async def recover(self, transport):
        self.recovered.append(transport)
        if self.recover_error is not None:
            raise self.recover_error


class NoRecover(LedgerProtocol):
    async def execute(self, transport):
        raise BackendGone()


class GetVersion(LedgerProtocol):
    async def execute(self, transport):
        answer = await transport.exchange(APDUCommand(cla=0xE0, ins=0x06, p1=0, p2=0))
        return answer.data()


class FakeTransport:
    def __init__(self, answer):
        self.answer = answer
        self.calls = []

    def exchange(self, command):
        self.calls.append(command)
        return APDUAnswer(self.answer)


@pytest.mark.asyncio
async def test_run_returns_output_without_recovery():
    protocol = Recording(result="done")
    transport = object()
    result = await LedgerProtocol.run(protocol, transport)
    assert result == "done"
    assert protocol.recovered == []


@pytest.mark.asyncio
async def test_run_recovers_and_reraises(caplog):
    error = CommError("broken")
    protocol = Recording(error=error)
    transport = object()
    with caplog.at_level(logging.ERROR):
        with pytest.raises(CommError) as info:
            await protocol.run(transport)
    assert info.value is error
    assert protocol.recovered == [transport]
    assert "running recovery" in caplog.text


@pytest.mark.asyncio
async def test_failed_recovery_still_raises_original(caplog):
    error = BadRetcode(APDUResponseCodes.UNKNOWN)
    protocol = Recording(error=error, recover_error=BackendGone())
    with caplog.at_level(logging.ERROR):
        with pytest.raises(BadRetcode) as info:
            await protocol.run(object())
    assert info.value is error
    assert "Recovery failed" in caplog.text


@pytest.mark.asyncio
async def test_default_recover_keeps_error():
    protocol = NoRecover()
    assert await LedgerProtocol.recover(protocol, object()) is None
    with pytest.raises(BackendGone):
        await LedgerProtocol.run(protocol, object())


@pytest.mark.asyncio
async def test_protocol_over_ledger():
    transport = FakeTransport(b"\x01\x02\x90\x00")
    async with await Ledger.init(transport) as ledger:
        result = await GetVersion().run(ledger)
    assert result == b"\x01\x02"
    assert transport.calls[0].serialize() == b"\xe0\x06\x00\x00"


def test_protocol_is_abstract():
    with pytest.raises(TypeError):
        LedgerProtocol()