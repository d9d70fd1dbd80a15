import pytest

from abibind import (
    PYTHON,
    AddressValue,
    Boolean,
    DynamicBytes,
    DynamicSequence,
    FixedBytes,
    FixedSequence,
    FunctionReference,
    IdentifierResolver,
    IdentifierTable,
    Integer,
    StructType,
    Text,
    TypeMapper,
    UnsupportedType,
    abi,
)
from abibind._abi_types import Type, dispatch_type


def make_mapper(aliases=None):
    return TypeMapper(IdentifierResolver(IdentifierTable(), PYTHON, aliases or {}))


class Fixed128(Type):
    @property
    def canonical_form(self):
        return "fixed128x18"

    @property
    def is_dynamic(self):
        return False

    def __eq__(self, other):
        return isinstance(other, Fixed128)

    __hash__ = Type.__hash__


def test_scalars():
    mapper = make_mapper()
    assert mapper.map(abi.bool, owner="C") == (Boolean(), False)
    assert mapper.map(abi.uint(64), owner="C") == (Integer(64, signed=False), False)
    assert mapper.map(abi.int(8), owner="C") == (Integer(8, signed=True), False)
    assert mapper.map(abi.address, owner="C") == (AddressValue(), False)
    assert mapper.map(abi.bytes(4), owner="C") == (FixedBytes(4), False)
    assert mapper.map(abi.bytes(), owner="C") == (DynamicBytes(), False)
    assert mapper.map(abi.string, owner="C") == (Text(), False)

    function, _ = mapper.map(abi.function, owner="C")
    assert function == FunctionReference()
    assert function.size == 24
    assert function.canonical_form == "function"


def test_integer_precision():
    assert not Integer(64, signed=False).arbitrary_precision
    assert Integer(72, signed=False).arbitrary_precision
    assert Integer(256, signed=True).arbitrary_precision


def test_unsupported():
    with pytest.raises(UnsupportedType, match="Unsupported type: `fixed128x18`"):
        make_mapper().map(Fixed128(), owner="C")


def test_nested_arrays_keep_dimension_order():
    mapper = make_mapper()
    abi_type = dispatch_type(dict(type="uint64[3][4][5]"))
    mapped, requires_struct = mapper.map(abi_type, owner="C")
    assert not requires_struct
    assert mapped == FixedSequence(FixedSequence(FixedSequence(Integer(64, False), 3), 4), 5)
    assert mapped.dimensions == (5, 4, 3)
    assert mapped.canonical_form == "uint64[3][4][5]"
    assert PYTHON.annotation(FixedSequence(Integer(64, False), 3)) == "tuple[int, int, int]"

    mapped = mapper.map_type(dispatch_type(dict(type="uint8[][2][]")), owner="C")
    assert isinstance(mapped, DynamicSequence)
    assert mapped.dimensions == (None, 2, None)
    assert mapped.canonical_form == "uint8[][2][]"
    assert PYTHON.annotation(mapped) == "list[tuple[list[int], list[int]]]"


def test_determinism():
    mapper = make_mapper()
    point = abi.named_struct("Lib.Point", [("x", abi.uint(256)), ("y", abi.uint(256))])
    first = mapper.map_type(point[2], owner="C")
    second = mapper.map_type(point[2], owner="C")
    assert first == second
    assert first.element is second.element


def test_named_struct_shared():
    mapper = make_mapper()
    point = abi.named_struct("ExternalLib.SharedStruct", [("f1", abi.uint(256))])
    mapped1, requires_struct = mapper.map(point, owner="ContractOne")
    mapped2, _ = mapper.map(point, owner="ContractTwo")
    assert requires_struct
    assert mapped1 is mapped2
    assert isinstance(mapped1, StructType)
    assert mapped1.name == "ExternalLibSharedStruct"
    assert mapped1.owner is None
    assert mapper.structs == (mapped1,)


def test_unnamed_struct_private():
    mapper = make_mapper()
    tp = abi.struct(a=abi.uint(8), b=abi.bool)
    mapped1 = mapper.map_type(tp, owner="ContractOne")
    mapped2 = mapper.map_type(tp, owner="ContractTwo")
    assert mapped1 is not mapped2
    assert mapped1.owner == "ContractOne"
    assert [struct.name for struct in mapper.structs] == ["Struct0", "Struct1"]
    # Same contract - same struct
    assert mapper.map_type(tp, owner="ContractOne") is mapped1


def test_struct_fields():
    mapper = make_mapper()
    request = abi.named_struct(
        "oracle.request",
        [("data", abi.uint(256)), ("_data", abi.uint(256)), (None, abi.bool)],
    )
    mapped = mapper.map_type(request, owner="NameConflict")
    assert mapped.name == "OracleRequest"
    assert [field.name for field in mapped.fields] == ["data", "data0", "field2"]
    assert [field.raw_name for field in mapped.fields] == ["data", "_data", None]
    assert PYTHON.annotation(mapped) == "OracleRequest"


def test_nested_structs_registered_first():
    mapper = make_mapper()
    inner = abi.named_struct("Lib.Inner", [("x", abi.uint(8))])
    outer = abi.named_struct("Lib.Outer", [("inner", inner[...]), ("y", abi.string)])
    mapped, requires_struct = mapper.map(outer[...], owner="C")
    assert requires_struct
    assert [struct.name for struct in mapper.structs] == ["LibInner", "LibOuter"]
    assert PYTHON.annotation(mapped) == "list[LibOuter]"
    assert mapped.element.fields[0].mapped_type == DynamicSequence(mapper.structs[0])


def test_struct_alias():
    mapper = make_mapper({"Lib.Point": "Point"})
    point = abi.named_struct("Lib.Point", [("x", abi.uint(8))])
    assert mapper.map_type(point, owner="C").name == "Point"
