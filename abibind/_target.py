import keyword
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from ._type_mapper import MappedType


class SymbolKind(Enum):
    """The kind of an exported symbol, determining its naming convention."""

    CONTRACT = "contract"
    STRUCT = "struct"
    EVENT = "event"
    ERROR = "error"
    FUNCTION = "function"
    FIELD = "field"
    PARAMETER = "parameter"


class NamingStyle(Enum):
    """How a raw Solidity identifier is turned into an exported one."""

    CAP_WORDS = "CapWords"
    """Every ``_``-separated part is capitalized: ``_my_var`` becomes ``MyVar``."""

    MIXED_CASE = "mixedCase"
    """Like ``CAP_WORDS``, but the first part keeps its case: ``_my_var`` becomes ``myVar``."""


def to_camel_case(name: str, *, capitalize_first: bool) -> str:
    """
    Joins the ``_``-separated parts of ``name`` capitalizing each part's first character.
    Leading and repeated underscores disappear.
    """
    parts = [part for part in name.replace("$", "_").split("_") if part]
    converted = []
    for i, part in enumerate(parts):
        if i == 0 and not capitalize_first:
            converted.append(part)
        else:
            converted.append(part[0].upper() + part[1:])
    return "".join(converted)


@dataclass(frozen=True)
class Target:
    """
    Naming and type conventions of a target language.

    Every exported identifier produced for this target is a valid identifier of the language,
    is not one of its reserved words, and does not start with a digit.
    """

    name: str
    """The name of the target language."""

    styles: Mapping[SymbolKind, NamingStyle]
    """Naming style for each kind of symbol."""

    digit_prefixes: Mapping[SymbolKind, str]
    """
    A prefix for names that would otherwise start with a digit.
    Also used on its own for names without letters or digits.
    """

    positional_names: Mapping[SymbolKind, str]
    """Format strings (with a single ``{}`` for the position) for unnamed fields/parameters."""

    keywords: frozenset[str]
    """Words reserved for every kind of symbol."""

    reserved: Mapping[SymbolKind, frozenset[str]] = field(default_factory=dict)
    """Words reserved for specific kinds of symbols."""

    def convert(self, kind: SymbolKind, raw_name: str) -> str:
        """Applies the naming style and the digit prefix for ``kind`` to ``raw_name``."""
        capitalize_first = self.styles[kind] == NamingStyle.CAP_WORDS
        if kind in (SymbolKind.STRUCT, SymbolKind.CONTRACT):
            # Qualified names (`Lib.Point`) are joined into a single identifier.
            name = "".join(
                to_camel_case(part, capitalize_first=capitalize_first)
                for part in raw_name.split(".")
            )
        else:
            name = to_camel_case(raw_name, capitalize_first=capitalize_first)
        if name and name[0].isdigit():
            name = self.digit_prefixes[kind] + name
        return name

    def positional_name(self, kind: SymbolKind, position: int) -> str:
        """Returns the name for an unnamed field or parameter."""
        return self.positional_names[kind].format(position)

    def escaped_name(self, kind: SymbolKind) -> str:
        """
        Returns the name for a symbol whose raw name has nothing but ``_`` and ``$`` in it
        (e.g. a function called ``$``).
        """
        return self.digit_prefixes[kind]

    def is_reserved(self, kind: SymbolKind, name: str) -> bool:
        return name in self.keywords or name in self.reserved.get(kind, frozenset())

    def is_valid(self, kind: SymbolKind, name: str) -> bool:
        """Whether ``name`` can be used verbatim as an identifier of the given kind."""
        return name.isidentifier() and name.isascii() and not self.is_reserved(kind, name)

    def annotation(self, mapped_type: "MappedType") -> str:
        """Returns the type annotation for the given mapped type."""
        # Avoiding a circular import, the mapped types are defined based on this module.
        from ._type_mapper import (
            AddressValue,
            Boolean,
            DynamicBytes,
            DynamicSequence,
            FixedBytes,
            FixedSequence,
            Integer,
            StructType,
            Text,
            TopicHash,
        )

        match mapped_type:
            case Boolean():
                return "bool"
            case Integer():
                return "int"
            case AddressValue():
                return "Address"
            case TopicHash():
                return "LogTopic"
            case FixedBytes() | DynamicBytes():
                return "bytes"
            case Text():
                return "str"
            case FixedSequence(element=element, size=size):
                return "tuple[" + ", ".join([self.annotation(element)] * size) + "]"
            case DynamicSequence(element=element):
                return f"list[{self.annotation(element)}]"
            case StructType():
                return mapped_type.name
        raise TypeError(f"Unknown mapped type: {mapped_type!r}")


_MEMBER_RESERVED = frozenset(
    [
        "abi",
        "address",
        "bytecode",
        "deploy",
        "call",
        "transact",
        "events",
        "errors",
        "link",
    ]
)

_TYPE_RESERVED = frozenset(
    [
        "Address",
        "Any",
        "LogEntry",
        "LogTopic",
        "DecodedEvent",
        "EventIterator",
        "EventSubscription",
        "bool",
        "bytes",
        "dict",
        "int",
        "list",
        "object",
        "str",
        "tuple",
        "type",
    ]
)


PYTHON = Target(
    name="python",
    styles={
        SymbolKind.CONTRACT: NamingStyle.CAP_WORDS,
        SymbolKind.STRUCT: NamingStyle.CAP_WORDS,
        SymbolKind.EVENT: NamingStyle.CAP_WORDS,
        SymbolKind.ERROR: NamingStyle.CAP_WORDS,
        SymbolKind.FUNCTION: NamingStyle.MIXED_CASE,
        SymbolKind.FIELD: NamingStyle.MIXED_CASE,
        SymbolKind.PARAMETER: NamingStyle.MIXED_CASE,
    },
    digit_prefixes={
        SymbolKind.CONTRACT: "C",
        SymbolKind.STRUCT: "S",
        SymbolKind.EVENT: "E",
        SymbolKind.ERROR: "E",
        SymbolKind.FUNCTION: "m",
        SymbolKind.FIELD: "f",
        SymbolKind.PARAMETER: "p",
    },
    positional_names={
        SymbolKind.STRUCT: "Struct{}",
        SymbolKind.FIELD: "field{}",
        SymbolKind.PARAMETER: "arg{}",
    },
    keywords=frozenset(keyword.kwlist),
    reserved={
        SymbolKind.CONTRACT: _TYPE_RESERVED,
        SymbolKind.STRUCT: _TYPE_RESERVED,
        SymbolKind.EVENT: _TYPE_RESERVED,
        SymbolKind.ERROR: _TYPE_RESERVED,
        SymbolKind.FUNCTION: _MEMBER_RESERVED,
        SymbolKind.PARAMETER: frozenset(["self", "cls"]),
    },
)
"""Python bindings."""
