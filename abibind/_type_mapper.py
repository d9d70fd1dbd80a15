import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

from ._abi_types import (
    AddressType,
    Array,
    Bool,
    Bytes,
    FunctionType,
    Int,
    String,
    Struct,
    Type,
    UInt,
)
from ._errors import UnsupportedType
from ._identifiers import TYPES_NAMESPACE, IdentifierResolver
from ._target import SymbolKind

logger = logging.getLogger(__name__)

NATIVE_INTEGER_BITS = 64
"""Integers wider than this are mapped to an arbitrary-precision type."""

HASH_SIZE = 32


class MappedType(ABC):
    """A type of the target type system."""

    @property
    @abstractmethod
    def canonical_form(self) -> str:
        """The ABI type this type represents."""

    @property
    def requires_struct(self) -> bool:
        """Whether a generated structure is involved in this type."""
        return False

    def __str__(self) -> str:
        return self.canonical_form


@dataclass(frozen=True)
class Boolean(MappedType):
    """A boolean."""

    @property
    def canonical_form(self) -> str:
        return "bool"


@dataclass(frozen=True)
class Integer(MappedType):
    """A fixed-width integer, with the signedness preserved."""

    bits: int
    signed: bool

    @property
    def arbitrary_precision(self) -> bool:
        """Whether the value does not fit a native machine integer."""
        return self.bits > NATIVE_INTEGER_BITS

    @property
    def canonical_form(self) -> str:
        return ("int" if self.signed else "uint") + str(self.bits)


@dataclass(frozen=True)
class AddressValue(MappedType):
    """A 20-byte address value."""

    size = 20

    @property
    def canonical_form(self) -> str:
        return "address"


@dataclass(frozen=True)
class FixedBytes(MappedType):
    """A fixed-size byte array."""

    size: int

    @property
    def canonical_form(self) -> str:
        return f"bytes{self.size}"


@dataclass(frozen=True)
class FunctionReference(FixedBytes):
    """An external function reference (an address and a selector) kept as 24 raw bytes."""

    size: int = 24

    @property
    def canonical_form(self) -> str:
        return "function"


@dataclass(frozen=True)
class TopicHash(FixedBytes):
    """
    The hash of an indexed event field of a reference type,
    which is what the log topic stores instead of the value.
    """

    size: int = HASH_SIZE

    @property
    def canonical_form(self) -> str:
        return "bytes32"


@dataclass(frozen=True)
class DynamicBytes(MappedType):
    """A growable byte sequence."""

    @property
    def canonical_form(self) -> str:
        return "bytes"


@dataclass(frozen=True)
class Text(MappedType):
    """A text string."""

    @property
    def canonical_form(self) -> str:
        return "string"


@dataclass(frozen=True)
class FixedSequence(MappedType):
    """A sequence of exactly ``size`` elements."""

    element: MappedType
    size: int

    @property
    def canonical_form(self) -> str:
        return f"{self.element.canonical_form}[{self.size}]"

    @property
    def requires_struct(self) -> bool:
        return self.element.requires_struct

    @property
    def dimensions(self) -> tuple[None | int, ...]:
        """Sizes of the nested sequences, outermost first (``None`` for growable ones)."""
        return (self.size, *_dimensions(self.element))


@dataclass(frozen=True)
class DynamicSequence(MappedType):
    """A growable sequence."""

    element: MappedType

    @property
    def canonical_form(self) -> str:
        return f"{self.element.canonical_form}[]"

    @property
    def requires_struct(self) -> bool:
        return self.element.requires_struct

    @property
    def dimensions(self) -> tuple[None | int, ...]:
        """Sizes of the nested sequences, outermost first (``None`` for growable ones)."""
        return (None, *_dimensions(self.element))


def _dimensions(mapped_type: MappedType) -> tuple[None | int, ...]:
    if isinstance(mapped_type, FixedSequence | DynamicSequence):
        return mapped_type.dimensions
    return ()


@dataclass(frozen=True)
class ArgSpec:
    """A typed argument: a parameter, an output, an event field or a struct field."""

    raw_name: None | str
    """The name declared in the ABI (``None`` if unnamed)."""

    name: str
    """The exported name."""

    abi_type: Type
    """The declared ABI type."""

    mapped_type: MappedType
    """The type in the target type system."""

    indexed: bool = False
    """Whether the argument is an indexed event field."""

    @property
    def hashed(self) -> bool:
        """Whether the argument is an indexed field exposed as its topic hash."""
        return isinstance(self.mapped_type, TopicHash)


@dataclass(frozen=True, eq=False)
class StructType(MappedType):
    """
    A generated structure corresponding to an ABI tuple.

    Structures are compared by identity: the same declared tuple
    always maps to the same object during a run.
    """

    name: str
    """The exported type name."""

    abi_type: Struct
    """The tuple this structure was created from."""

    fields: tuple[ArgSpec, ...]
    """The structure fields."""

    owner: None | str
    """
    The contract this structure is private to,
    or ``None`` if it comes from a named declaration and can be shared.
    """

    @property
    def qualified_name(self) -> None | str:
        return self.abi_type.qualified_name

    @property
    def canonical_form(self) -> str:
        return self.abi_type.canonical_form

    @property
    def requires_struct(self) -> bool:
        return True

    def __repr__(self) -> str:
        return f"StructType({self.name}{self.abi_type})"


class TypeMapper:
    """
    Translates ABI types into the target type system,
    creating one structure per distinct tuple.

    Tuples with a declared name (from ``internalType``) are shared between contracts,
    unnamed ones are only shared within the contract that uses them.
    """

    def __init__(self, identifiers: IdentifierResolver):
        self._identifiers = identifiers
        self._structs: dict[tuple[None | str, None | str, str], StructType] = {}

    @property
    def structs(self) -> tuple[StructType, ...]:
        """All the structures created so far, dependencies first."""
        return tuple(self._structs.values())

    def map(self, abi_type: Type, *, owner: str) -> tuple[MappedType, bool]:
        """
        Returns the mapped type and whether it requires a generated structure.
        ``owner`` is the name of the contract the type is used in.
        """
        mapped_type = self.map_type(abi_type, owner=owner)
        return mapped_type, mapped_type.requires_struct

    def map_type(self, abi_type: Type, *, owner: str) -> MappedType:  # noqa: PLR0911
        """Returns the mapped type for ``abi_type`` used in the contract ``owner``."""
        match abi_type:
            case Bool():
                return Boolean()
            case UInt(bits=bits):
                return Integer(bits, signed=False)
            case Int(bits=bits):
                return Integer(bits, signed=True)
            case AddressType():
                return AddressValue()
            case FunctionType():
                return FunctionReference()
            case Bytes(size=None):
                return DynamicBytes()
            case Bytes(size=size):
                return FixedBytes(size)
            case String():
                return Text()
            case Array(element_type=element_type, size=None):
                return DynamicSequence(self.map_type(element_type, owner=owner))
            case Array(element_type=element_type, size=size):
                return FixedSequence(self.map_type(element_type, owner=owner), size)
            case Struct():
                return self._map_struct(abi_type, owner)
        raise UnsupportedType(abi_type.canonical_form)

    def _map_struct(self, abi_type: Struct, owner: str) -> StructType:
        qualified_name = abi_type.qualified_name
        struct_owner = None if qualified_name else owner
        key = (qualified_name, struct_owner, abi_type.canonical_form)
        if key in self._structs:
            return self._structs[key]

        # Nested structures get registered (and named) before the outer one.
        mapped_fields = [
            (raw_name, field_type, self.map_type(field_type, owner=owner))
            for raw_name, field_type in abi_type.fields
        ]

        name = self._identifiers.resolve(
            TYPES_NAMESPACE,
            SymbolKind.STRUCT,
            qualified_name,
            (struct_owner or "") + abi_type.canonical_form,
            position=len(self._structs),
        )

        namespace = f"struct {name}"
        fields = tuple(
            ArgSpec(
                raw_name=raw_name,
                name=self._identifiers.resolve(
                    namespace, SymbolKind.FIELD, raw_name, position=position
                ),
                abi_type=field_type,
                mapped_type=mapped_type,
            )
            for position, (raw_name, field_type, mapped_type) in enumerate(mapped_fields)
        )

        struct = StructType(name=name, abi_type=abi_type, fields=fields, owner=struct_owner)
        self._structs[key] = struct
        logger.debug("Registered struct %s for %s", name, qualified_name or abi_type)
        return struct
