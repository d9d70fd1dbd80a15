import re
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping, Sequence
from functools import cached_property
from typing import Any

from ._errors import InvalidABI, UnsupportedType

ABI_JSON = None | bool | int | float | str | Sequence["ABI_JSON"] | Mapping[str, "ABI_JSON"]
"""Values serializable to JSON."""


class Type(ABC):
    """The base type for Solidity types."""

    @property
    @abstractmethod
    def canonical_form(self) -> str:
        """Returns the type as a string in the canonical form (as used in signatures)."""

    @property
    @abstractmethod
    def is_dynamic(self) -> bool:
        """Whether the encoding of this type has no fixed size."""

    @property
    def hashed_in_topic(self) -> bool:
        """
        Whether a value of this type, when used as an indexed event field,
        is stored in the topic as a hash and cannot be recovered.
        """
        # By default it's just the dynamic types.
        # May be overridden.
        return self.is_dynamic

    def __str__(self) -> str:
        return self.canonical_form

    def __repr__(self) -> str:
        return f"abi({self.canonical_form})"

    def __hash__(self) -> int:
        return hash(self.canonical_form)

    def __getitem__(self, array_size: int | Any) -> "Array":
        # In Py3.10 they added EllipsisType which would work better here.
        # For now, relying on the documentation.
        if isinstance(array_size, int):
            return Array(self, array_size)
        if array_size == ...:
            return Array(self, None)
        raise TypeError(f"Invalid array size specifier type: {type(array_size).__name__}")


class UInt(Type):
    """Corresponds to the Solidity ``uint<bits>`` type."""

    bits: int
    """The bit width of the type."""

    def __init__(self, bits: int):
        if bits <= 0 or bits > 256 or bits % 8 != 0:  # noqa: PLR2004
            raise InvalidABI(f"Incorrect `uint` bit size: {bits}")
        self.bits = bits

    @property
    def canonical_form(self) -> str:
        return f"uint{self.bits}"

    @property
    def is_dynamic(self) -> bool:
        return False

    def __eq__(self, other: object) -> bool:
        return isinstance(other, UInt) and self.bits == other.bits

    __hash__ = Type.__hash__


class Int(Type):
    """Corresponds to the Solidity ``int<bits>`` type."""

    bits: int
    """The bit width of the type."""

    def __init__(self, bits: int):
        if bits <= 0 or bits > 256 or bits % 8 != 0:  # noqa: PLR2004
            raise InvalidABI(f"Incorrect `int` bit size: {bits}")
        self.bits = bits

    @property
    def canonical_form(self) -> str:
        return f"int{self.bits}"

    @property
    def is_dynamic(self) -> bool:
        return False

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Int) and self.bits == other.bits

    __hash__ = Type.__hash__


class Bytes(Type):
    """Corresponds to the Solidity ``bytes<size>`` type, or ``bytes`` if ``size`` is ``None``."""

    size: None | int
    """The fixed size of the bytestring."""

    def __init__(self, size: None | int = None):
        if size is not None and (size <= 0 or size > 32):  # noqa: PLR2004
            raise InvalidABI(f"Incorrect `bytes` size: {size}")
        self.size = size

    @property
    def canonical_form(self) -> str:
        return f"bytes{self.size if self.size else ''}"

    @property
    def is_dynamic(self) -> bool:
        # Sized `bytes` is a value type, dynamic `bytes` is a reference type.
        return self.size is None

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Bytes) and self.size == other.size

    __hash__ = Type.__hash__


class AddressType(Type):
    """
    Corresponds to the Solidity ``address`` type.
    Not to be confused with ``ethereum_rpc.Address`` which represents an address value.
    """

    @property
    def canonical_form(self) -> str:
        return "address"

    @property
    def is_dynamic(self) -> bool:
        return False

    def __eq__(self, other: object) -> bool:
        return isinstance(other, AddressType)

    __hash__ = Type.__hash__


class String(Type):
    """Corresponds to the Solidity ``string`` type."""

    @property
    def canonical_form(self) -> str:
        return "string"

    @property
    def is_dynamic(self) -> bool:
        return True

    def __eq__(self, other: object) -> bool:
        return isinstance(other, String)

    __hash__ = Type.__hash__


class Bool(Type):
    """Corresponds to the Solidity ``bool`` type."""

    @property
    def canonical_form(self) -> str:
        return "bool"

    @property
    def is_dynamic(self) -> bool:
        return False

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Bool)

    __hash__ = Type.__hash__


class FunctionType(Type):
    """
    Corresponds to the Solidity external function type
    (an address followed by a selector, 24 bytes in total).
    """

    @property
    def canonical_form(self) -> str:
        return "function"

    @property
    def is_dynamic(self) -> bool:
        return False

    def __eq__(self, other: object) -> bool:
        return isinstance(other, FunctionType)

    __hash__ = Type.__hash__


class Array(Type):
    """Corresponds to the Solidity array (``[<size>]``) type."""

    element_type: Type
    """The type of the array elements."""

    size: None | int
    """The number of elements, or ``None`` for dynamic arrays."""

    def __init__(self, element_type: Type, size: None | int = None):
        if size is not None and size <= 0:
            raise InvalidABI(f"Incorrect array size: {size}")
        self.element_type = element_type
        self.size = size

    @cached_property
    def canonical_form(self) -> str:
        return self.element_type.canonical_form + "[" + (str(self.size) if self.size else "") + "]"

    @property
    def is_dynamic(self) -> bool:
        return self.size is None or self.element_type.is_dynamic

    @property
    def hashed_in_topic(self) -> bool:
        # Arrays are reference types, even the fixed-size ones.
        return True

    def __eq__(self, other: object) -> bool:
        return (
            isinstance(other, Array)
            and self.element_type == other.element_type
            and self.size == other.size
        )

    __hash__ = Type.__hash__


class Struct(Type):
    """Corresponds to the Solidity struct type (a tuple in the ABI)."""

    fields: tuple[tuple[None | str, Type], ...]
    """Field names (``None`` for unnamed components) and types, in declaration order."""

    qualified_name: None | str
    """
    The declared name of the struct (e.g. ``Lib.Point``), if the ABI provides one
    in the ``internalType`` field.
    """

    def __init__(
        self,
        fields: Mapping[str, Type] | Sequence[tuple[None | str, Type]],
        qualified_name: None | str = None,
    ):
        if isinstance(fields, Mapping):
            self.fields = tuple(fields.items())
        else:
            self.fields = tuple(fields)
        self.qualified_name = qualified_name

    @cached_property
    def canonical_form(self) -> str:
        return "(" + ",".join(tp.canonical_form for _name, tp in self.fields) + ")"

    @property
    def is_dynamic(self) -> bool:
        return any(tp.is_dynamic for _name, tp in self.fields)

    @property
    def hashed_in_topic(self) -> bool:
        # Structs are reference types.
        return True

    def __str__(self) -> str:
        # Overriding  the `Type`'s implementation because we want to show the field names too
        return (
            "("
            + ", ".join(
                tp.canonical_form + ((" " + name) if name else "") for name, tp in self.fields
            )
            + ")"
        )

    def __eq__(self, other: object) -> bool:
        return (
            isinstance(other, Struct)
            # structs with the same fields but in different order are not equal
            and self.fields == other.fields
            and self.qualified_name == other.qualified_name
        )

    __hash__ = Type.__hash__


_INTEGER_RE = re.compile(r"(u?)int(\d*)")
_BYTES_RE = re.compile(r"bytes(\d*)")
_FIXED_POINT_RE = re.compile(r"u?fixed(\d+x\d+)?")
_ARRAY_RE = re.compile(r"^(.*?)(\[(\d*)\])$")
_STRUCT_PREFIX = "struct "

_NO_PARAMS: dict[str, Type] = {
    "address": AddressType(),
    "string": String(),
    "bool": Bool(),
    "function": FunctionType(),
}


def type_from_abi_string(abi_string: str) -> Type:
    """Parses a non-array, non-tuple type string."""
    if match := _INTEGER_RE.fullmatch(abi_string):
        bits = int(match.group(2)) if match.group(2) else 256
        return UInt(bits) if match.group(1) else Int(bits)
    if match := _BYTES_RE.fullmatch(abi_string):
        size = match.group(1)
        return Bytes(int(size) if size else None)
    if abi_string in _NO_PARAMS:
        return _NO_PARAMS[abi_string]
    if _FIXED_POINT_RE.fullmatch(abi_string) or abi_string.isidentifier():
        # A well-formed name that we just do not know how to represent.
        raise UnsupportedType(abi_string)
    raise InvalidABI(f"Incorrect type format: `{abi_string}`")


def _struct_name(internal_type: None | str) -> None | str:
    """
    Extracts the struct name from the ``internalType`` of a tuple
    (e.g. ``struct Lib.Point[2][]`` gives ``Lib.Point``).
    """
    if not internal_type or not internal_type.startswith(_STRUCT_PREFIX):
        return None
    name = internal_type[len(_STRUCT_PREFIX) :]
    bracket = name.find("[")
    return name if bracket == -1 else name[:bracket]


def parameter_name(abi_entry: Mapping[str, Any]) -> None | str:
    """Returns the ``name`` of a JSON ABI parameter entry, or ``None`` if it is empty or missing."""
    name = abi_entry.get("name")
    if name is not None and not isinstance(name, str):
        raise InvalidABI(f"A parameter `name` must be a string, got {name!r}")
    return name or None


def dispatch_type(abi_entry: Mapping[str, Any]) -> Type:
    """Creates a type object from a JSON ABI parameter entry (with possible ``components``)."""
    type_str = abi_entry.get("type")
    if not isinstance(type_str, str) or not type_str:
        raise InvalidABI(f"Missing or malformed `type` in the parameter entry: {abi_entry!r}")

    # The last bracket pair denotes the outermost dimension:
    # `uint64[3][4][5]` is an array of 5 elements, each being `uint64[3][4]`.
    if match := _ARRAY_RE.match(type_str):
        element_entry = dict(abi_entry)
        element_entry["type"] = match.group(1)
        element_type = dispatch_type(element_entry)
        size = match.group(3)
        return Array(element_type, int(size) if size else None)

    if "[" in type_str or "]" in type_str:
        raise InvalidABI(f"Incorrect type format: `{type_str}`")

    if type_str == "tuple":
        components = abi_entry.get("components")
        if not isinstance(components, list):
            raise InvalidABI("A tuple parameter entry must have a list of `components`")
        fields = []
        for component in components:
            if not isinstance(component, Mapping):
                raise InvalidABI(f"A tuple component must be a JSON object, got {component!r}")
            fields.append((parameter_name(component), dispatch_type(component)))
        return Struct(fields, _struct_name(abi_entry.get("internalType")))

    return type_from_abi_string(type_str)


def dispatch_types(abi_entries: Iterable[Mapping[str, Any]]) -> list[tuple[None | str, Type]]:
    """Creates a list of named types from a list of JSON ABI parameter entries."""
    return [(parameter_name(entry), dispatch_type(entry)) for entry in abi_entries]


def canonical_signature(types: Iterable[Type]) -> str:
    return "(" + ",".join(tp.canonical_form for tp in types) + ")"
