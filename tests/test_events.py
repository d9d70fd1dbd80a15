import pytest
from ethereum_rpc import LogTopic, keccak

from abibind import (
    PYTHON,
    AddressValue,
    ContractSource,
    Event,
    EventModelBuilder,
    IdentifierResolver,
    IdentifierTable,
    Integer,
    InvalidABI,
    OverloadResolver,
    Parameter,
    StructType,
    SymbolKind,
    Text,
    TopicHash,
    TypeMapper,
    abi,
    bind,
)


def make_builder():
    identifiers = IdentifierResolver(IdentifierTable(), PYTHON)
    type_mapper = TypeMapper(identifiers)
    overloads = OverloadResolver(identifiers)
    return EventModelBuilder(identifiers, type_mapper, overloads), identifiers


def test_indexed_split():
    builder, _ = make_builder()
    event = Event(
        "Transfer",
        (
            Parameter("from", abi.address, indexed=True),
            Parameter("to", abi.address, indexed=True),
            Parameter("value", abi.uint(256)),
        ),
    )
    (spec,) = builder.build("Token", "Token", [event])
    assert spec.name == "Transfer"
    assert spec.type_name == "TokenTransfer"
    assert spec.topic == LogTopic(keccak(b"Transfer(address,address,uint256)"))
    assert [arg.name for arg in spec.indexed_inputs] == ["from_", "to"]
    assert [arg.name for arg in spec.data_inputs] == ["value"]
    assert spec.indexed_inputs[0].mapped_type == AddressValue()
    assert spec.data_inputs[0].mapped_type == Integer(256, signed=False)
    assert spec.filter_name == "filterTransfer"
    assert spec.watch_name == "watchTransfer"
    assert spec.has_accessors


def test_hashed_indexed_fields():
    builder, _ = make_builder()
    point = abi.named_struct("Lib.Point", [("x", abi.uint(8))])
    event = Event(
        "Dynamic",
        (
            Parameter("idxStr", abi.string, indexed=True),
            Parameter("idxDat", abi.bytes(), indexed=True),
            Parameter("idxArr", abi.uint(8)[2], indexed=True),
            Parameter("str", abi.string),
            Parameter("point", point),
        ),
    )
    (spec,) = builder.build("EventChecker", "EventChecker", [event])

    for arg in spec.indexed_inputs:
        assert arg.mapped_type == TopicHash()
        assert arg.hashed
    assert spec.indexed_inputs[0].abi_type == abi.string
    assert spec.filter_arguments == spec.indexed_inputs
    assert PYTHON.annotation(spec.indexed_inputs[0].mapped_type) == "LogTopic"

    # Non-indexed fields keep their types
    assert spec.data_inputs[0].mapped_type == Text()
    assert isinstance(spec.data_inputs[1].mapped_type, StructType)


def test_indexed_struct_not_generated():
    identifiers = IdentifierResolver(IdentifierTable(), PYTHON)
    type_mapper = TypeMapper(identifiers)
    builder = EventModelBuilder(identifiers, type_mapper, OverloadResolver(identifiers))
    point = abi.named_struct("Lib.Point", [("x", abi.uint(8))])
    builder.build("C", "C", [Event("E", (Parameter("p", point, indexed=True),))])
    assert type_mapper.structs == ()


def test_anonymous_event():
    builder, _ = make_builder()
    event = Event(
        "Anon",
        tuple(Parameter(name, abi.uint(8), indexed=True) for name in "abcd"),
        anonymous=True,
    )
    (spec,) = builder.build("C", "C", [event])
    assert spec.anonymous
    assert spec.topic is None
    assert spec.filter_name is None
    assert spec.watch_name is None
    assert not spec.has_accessors
    assert spec.filter_arguments == ()
    assert len(spec.indexed_inputs) == 4


def test_too_many_indexed():
    with pytest.raises(InvalidABI, match="at most 3 indexed fields"):
        bind(
            [
                ContractSource(
                    "C",
                    [
                        dict(
                            type="event",
                            name="E",
                            inputs=[dict(name=n, type="uint8", indexed=True) for n in "abcd"],
                        )
                    ],
                )
            ]
        )


def test_field_collisions():
    builder, _ = make_builder()
    event = Event("log", (Parameter("msg", abi.int(256)), Parameter("_msg", abi.int(256))))
    (spec,) = builder.build("NameConflict", "NameConflict", [event])
    assert spec.name == "Log"
    assert [arg.name for arg in spec.inputs] == ["msg", "msg0"]


def test_overloaded_events():
    builder, _ = make_builder()
    events = [
        Event("bar", (Parameter("i", abi.uint(256)),)),
        Event("bar", (Parameter("i", abi.uint(256)), Parameter("j", abi.uint(256)))),
    ]
    specs = builder.build("Overload", "Overload", events)
    assert [spec.name for spec in specs] == ["Bar", "Bar0"]
    assert [spec.type_name for spec in specs] == ["OverloadBar", "OverloadBar0"]
    assert [spec.filter_name for spec in specs] == ["filterBar", "filterBar0"]
    assert specs[0].topic != specs[1].topic


def test_accessors_yield_to_functions():
    builder, identifiers = make_builder()
    identifiers.resolve("contract C", SymbolKind.FUNCTION, "filterTransfer")
    (spec,) = builder.build("C", "C", [Event("Transfer", ())])
    assert spec.filter_name == "filterTransfer0"
    assert spec.watch_name == "watchTransfer"


def test_numeric_event_name():
    builder, _ = make_builder()
    event = Event("_1TestEvent", (Parameter("_param", abi.uint(256)),))
    (spec,) = builder.build("C", "C", [event])
    assert spec.name == "E1TestEvent"
    assert spec.inputs[0].name == "param"
