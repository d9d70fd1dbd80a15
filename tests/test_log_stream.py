import os

import anyio
import pytest
import trio
from eth_abi import encode
from ethereum_rpc import Address, LogTopic, keccak

from abibind import (
    PYTHON,
    DecodedEvent,
    Event,
    EventDecoder,
    EventDecodingError,
    EventIterator,
    EventModelBuilder,
    IdentifierResolver,
    IdentifierTable,
    OverloadResolver,
    Parameter,
    TypeMapper,
    abi,
    watch_events,
)


def make_spec(event):
    identifiers = IdentifierResolver(IdentifierTable(), PYTHON)
    builder = EventModelBuilder(identifiers, TypeMapper(identifiers), OverloadResolver(identifiers))
    (spec,) = builder.build("C", "C", [event])
    return spec


TRANSFER = Event(
    "Transfer",
    (
        Parameter("from", abi.address, indexed=True),
        Parameter("to", abi.address, indexed=True),
        Parameter("value", abi.uint(256)),
    ),
)


def transfer_entry(make_log_entry, from_, to, value):
    return make_log_entry(
        [
            TRANSFER.topic,
            LogTopic(encode(["address"], [bytes(from_)])),
            LogTopic(encode(["address"], [bytes(to)])),
        ],
        encode(["uint256"], [value]),
    )


def test_decode(make_log_entry):
    decoder = EventDecoder(make_spec(TRANSFER))
    from_ = Address(os.urandom(20))
    to = Address(os.urandom(20))
    entry = transfer_entry(make_log_entry, from_, to, 10)

    decoded = decoder.decode(entry)
    assert decoded.name == "CTransfer"
    assert decoded.as_dict == {"from_": from_, "to": to, "value": 10}
    assert decoded.as_tuple == (from_, to, 10)
    assert decoded["value"] == 10
    assert decoded.log_entry == entry
    assert decoded == DecodedEvent("CTransfer", [("from_", from_), ("to", to), ("value", 10)], entry)
    assert repr(decoded) == f"CTransfer(from_={from_!r}, to={to!r}, value=10)"


def test_decode_hashed_fields(make_log_entry):
    point = abi.named_struct("Lib.Point", [("x", abi.uint(8)), ("owner", abi.address)])
    event = Event(
        "Dynamic",
        (
            Parameter("idxStr", abi.string, indexed=True),
            Parameter("str", abi.string),
            Parameter("points", point[2]),
        ),
    )
    decoder = EventDecoder(make_spec(event))
    owner = Address(os.urandom(20))
    str_hash = LogTopic(keccak(b"hello"))
    entry = make_log_entry(
        [event.topic, str_hash],
        encode(["string", "(uint8,address)[2]"], ["world", [(1, bytes(owner)), (2, bytes(owner))]]),
    )

    decoded = decoder.decode(entry)
    assert decoded["idxStr"] == str_hash
    assert decoded["str"] == "world"
    assert decoded["points"] == ((1, owner), (2, owner))


def test_decode_anonymous(make_log_entry):
    event = Event(
        "Anon",
        (Parameter("a", abi.bool, indexed=True), Parameter("b", abi.bytes())),
        anonymous=True,
    )
    decoder = EventDecoder(make_spec(event))
    entry = make_log_entry([LogTopic(encode(["bool"], [True]))], encode(["bytes"], [b"1234"]))
    assert decoder.decode(entry).as_dict == {"a": True, "b": b"1234"}


def test_decode_same_named_fields(make_log_entry):
    event = Event("Pair", (Parameter("a", abi.uint(8)), Parameter("a", abi.uint(8))))
    decoder = EventDecoder(make_spec(event))
    entry = make_log_entry([event.topic], encode(["uint8", "uint8"], [1, 2]))
    decoded = decoder.decode(entry)
    assert decoded.as_dict == {"a": 1, "a0": 2}
    assert decoded.as_tuple == (1, 2)


def test_decode_errors(make_log_entry):
    decoder = EventDecoder(make_spec(TRANSFER))
    from_ = Address(os.urandom(20))

    entry = make_log_entry([LogTopic(keccak(b"Other()"))], b"")
    with pytest.raises(EventDecodingError, match="does not belong to the event"):
        decoder.decode(entry)

    entry = make_log_entry([TRANSFER.topic], b"")
    with pytest.raises(EventDecodingError, match=r"number of topics in the log entry \(0\)"):
        decoder.decode(entry)

    entry = make_log_entry(
        [TRANSFER.topic, LogTopic(bytes(32)), LogTopic(encode(["address"], [bytes(from_)]))],
        b"\x00" * 5,
    )
    with pytest.raises(EventDecodingError, match="Could not decode a log entry"):
        decoder.decode(entry)


def test_iterator(make_log_entry):
    decoder = EventDecoder(make_spec(TRANSFER))
    addresses = [Address(os.urandom(20)) for _ in range(2)]
    entries = [transfer_entry(make_log_entry, *addresses, value) for value in range(3)]

    closed = []

    def source():
        try:
            yield from entries
        finally:
            closed.append(True)

    iterator = EventIterator(source(), decoder)
    assert iterator.event is None

    values = []
    while iterator.next():
        values.append(iterator.event["value"])
    assert values == [0, 1, 2]
    assert iterator.error is None
    assert iterator.event is None
    # Exhausted
    assert not iterator.next()

    iterator.close()
    iterator.close()
    assert closed == [True]


def test_iterator_closed_early(make_log_entry):
    decoder = EventDecoder(make_spec(TRANSFER))
    addresses = [Address(os.urandom(20)) for _ in range(2)]
    closed = []

    def source():
        try:
            for value in range(10):
                yield transfer_entry(make_log_entry, *addresses, value)
        finally:
            closed.append(True)

    with EventIterator(source(), decoder) as iterator:
        assert iterator.next()
        assert iterator.event["value"] == 0
    assert closed == [True]
    assert not iterator.next()


def test_iterator_errors(make_log_entry):
    decoder = EventDecoder(make_spec(TRANSFER))
    addresses = [Address(os.urandom(20)) for _ in range(2)]
    good = transfer_entry(make_log_entry, *addresses, 1)
    bad = make_log_entry([LogTopic(keccak(b"Other()"))], b"")

    iterator = EventIterator([good, bad, good], decoder)
    assert [event["value"] for event in iterator] == [1]
    assert isinstance(iterator.error, EventDecodingError)
    assert not iterator.next()

    def failing_source():
        yield good
        raise ConnectionError("connection lost")

    iterator = EventIterator(failing_source(), decoder)
    assert iterator.next()
    assert not iterator.next()
    assert isinstance(iterator.error, ConnectionError)


async def test_subscription(make_log_entry):
    decoder = EventDecoder(make_spec(TRANSFER))
    addresses = [Address(os.urandom(20)) for _ in range(2)]
    entries = [transfer_entry(make_log_entry, *addresses, value) for value in range(3)]
    closed = []

    async def source():
        try:
            for entry in entries:
                yield entry
            await trio.sleep_forever()
        finally:
            closed.append(True)

    async with watch_events(source(), decoder) as subscription:
        received = [(await subscription.receive())["value"] for _ in range(3)]
        assert received == [0, 1, 2]

        await subscription.cancel()
        assert subscription.finished
        assert closed == [True]
        assert subscription.error is None

        with pytest.raises(anyio.EndOfStream):
            await subscription.receive()

        # Repeated cancellation is fine
        await subscription.cancel()


async def test_subscription_cancelled_on_exit(make_log_entry):
    decoder = EventDecoder(make_spec(TRANSFER))
    addresses = [Address(os.urandom(20)) for _ in range(2)]
    closed = []

    async def source():
        try:
            value = 0
            while True:
                yield transfer_entry(make_log_entry, *addresses, value)
                value += 1
        finally:
            closed.append(True)

    async with watch_events(source(), decoder, buffer_size=2) as subscription:
        received = []
        async for event in subscription:
            received.append(event["value"])
            if len(received) == 5:
                break

    assert received == [0, 1, 2, 3, 4]
    assert subscription.finished
    assert closed == [True]


async def test_subscription_error(make_log_entry):
    decoder = EventDecoder(make_spec(TRANSFER))
    addresses = [Address(os.urandom(20)) for _ in range(2)]
    good = transfer_entry(make_log_entry, *addresses, 1)
    bad = make_log_entry([LogTopic(keccak(b"Other()"))], b"")

    async def source():
        yield good
        yield bad
        yield good

    async with watch_events(source(), decoder) as subscription:
        received = [event["value"] async for event in subscription]

    assert received == [1]
    assert isinstance(subscription.error, EventDecodingError)
