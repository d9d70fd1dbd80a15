import pytest

from abibind import (
    PYTHON,
    AmbiguousOverload,
    BindingError,
    Event,
    Function,
    IdentifierResolver,
    IdentifierTable,
    Mutability,
    OverloadResolver,
    Parameter,
    SymbolKind,
    abi,
)


def make_resolver(signatures=None, aliases=None):
    identifiers = IdentifierResolver(IdentifierTable(), PYTHON, aliases or {})
    return OverloadResolver(identifiers, signatures or {})


def function(name, *types, internal_types=None):
    internal_types = internal_types or [None] * len(types)
    return Function(
        name=name,
        inputs=tuple(
            Parameter(f"a{i}", tp, internal_type=internal_type)
            for i, (tp, internal_type) in enumerate(zip(types, internal_types, strict=True))
        ),
        outputs=(),
        mutability=Mutability.NONPAYABLE,
    )


def test_single_entries():
    resolver = make_resolver()
    entries = [function("foo", abi.uint(256)), function("bar")]
    assert resolver.resolve("C", SymbolKind.FUNCTION, entries) == ["foo", "bar"]


def test_overloaded_functions():
    resolver = make_resolver()
    entries = [
        function("foo", abi.uint(256)),
        function("bar"),
        function("foo", abi.uint(256), abi.uint(256)),
        function("foo", abi.bool),
    ]
    names = resolver.resolve("C", SymbolKind.FUNCTION, entries)
    assert names == ["foo", "bar", "foo0", "foo1"]
    assert len(set(names)) == len(names)

    # Stable across runs
    assert make_resolver().resolve("C", SymbolKind.FUNCTION, entries) == names


def test_overloaded_events():
    resolver = make_resolver()
    entries = [
        Event("bar", (Parameter("i", abi.uint(256)),)),
        Event("bar", (Parameter("i", abi.uint(256)), Parameter("j", abi.uint(256)))),
    ]
    assert resolver.resolve("C:events", SymbolKind.EVENT, entries) == ["Bar", "Bar0"]


def test_suffix_skips_taken_names():
    resolver = make_resolver()
    entries = [
        function("foo0"),
        function("foo", abi.uint(256)),
        function("foo", abi.uint(8)),
    ]
    assert resolver.resolve("C", SymbolKind.FUNCTION, entries) == ["foo0", "foo", "foo1"]


def test_ambiguous_overload():
    resolver = make_resolver()
    fn_type = abi.function
    entries = [
        function("test", fn_type, internal_types=["function (uint256) external"]),
        function("test", fn_type, internal_types=["function (bytes) external"]),
    ]
    with pytest.raises(
        AmbiguousOverload, match=r"More than one entry has the signature `test\(function\)`"
    ):
        resolver.resolve("C", SymbolKind.FUNCTION, entries)


def test_selector_overrides():
    signatures = {
        "test(function (uint256) external)": "0x11111111",
        "test(function (bytes) external)": "22222222",
    }
    resolver = make_resolver(signatures)
    fn_type = abi.function
    entries = [
        function("test", fn_type, internal_types=["function (uint256) external"]),
        function("test", fn_type, internal_types=["function (bytes) external"]),
    ]
    assert resolver.resolve("C", SymbolKind.FUNCTION, entries) == ["test", "test0"]
    assert resolver.selector(entries[0]) == bytes.fromhex("11111111")
    assert resolver.selector(entries[1]) == bytes.fromhex("22222222")


def test_canonical_signature_override():
    resolver = make_resolver({"foo(uint256)": "deadbeef"})
    entry = function("foo", abi.uint(256))
    assert resolver.selector(entry) == bytes.fromhex("deadbeef")
    assert resolver.selector(function("foo")) == function("foo").selector


def test_invalid_overrides():
    with pytest.raises(BindingError, match="is not a hex string"):
        make_resolver({"foo()": "xyz"})
    with pytest.raises(BindingError, match="must be 4 bytes long, got 2"):
        make_resolver({"foo()": "0xabcd"})


def test_overloads_with_alias():
    resolver = make_resolver(aliases={"foo": "doFoo"})
    entries = [function("foo", abi.uint(256)), function("foo", abi.uint(8))]
    assert resolver.resolve("C", SymbolKind.FUNCTION, entries) == ["doFoo", "doFoo0"]
