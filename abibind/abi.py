# This is the whole point of this module.
# ruff: noqa: A001

"""Aliases for various Solidity types."""

from collections.abc import Sequence

from ._abi_types import AddressType, Bool, Bytes, FunctionType, Int, String, Struct, Type, UInt

_PyInt = int


def uint(bits: _PyInt) -> UInt:
    """Returns the ``uint<bits>`` type."""
    return UInt(bits)


def int(bits: _PyInt) -> Int:
    """Returns the ``int<bits>`` type."""
    return Int(bits)


def bytes(size: None | _PyInt = None) -> Bytes:
    """Returns the ``bytes<size>`` type, or ``bytes`` if ``size`` is ``None``."""
    return Bytes(size)


def struct(**kwargs: Type) -> Struct:
    """Returns the anonymous structure type with given fields."""
    return Struct(kwargs)


def named_struct(qualified_name: str, fields: Sequence[tuple[None | str, Type]]) -> Struct:
    """Returns the structure type with given fields declared as ``qualified_name``."""
    return Struct(fields, qualified_name)


address: AddressType = AddressType()
"""``address`` type."""

string: String = String()
"""``string`` type."""

bool: Bool = Bool()
"""``bool`` type."""

function: FunctionType = FunctionType()
"""External ``function`` type."""
