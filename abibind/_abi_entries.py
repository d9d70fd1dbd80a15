import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from functools import cached_property
from json import JSONDecodeError
from typing import Any

from ethereum_rpc import LogTopic, keccak

from ._abi_types import ABI_JSON, Type, dispatch_type, parameter_name
from ._errors import BindingError, InvalidABI

# Anonymous events can have at most 4 indexed fields
ANONYMOUS_EVENT_INDEXED_FIELDS = 4

# Non-anonymous events can have at most 3 indexed fields (the first topic is the signature)
EVENT_INDEXED_FIELDS = 3

# The number of bytes in a function selector.
SELECTOR_LENGTH = 4


class Mutability(Enum):
    """Possible states of a contract's method mutability."""

    PURE = "pure"
    """Solidity's ``pure`` (does not read or write the contract state)."""
    VIEW = "view"
    """Solidity's ``view`` (may read the contract state)."""
    NONPAYABLE = "nonpayable"
    """Solidity's ``nonpayable`` (may write the contract state)."""
    PAYABLE = "payable"
    """
    Solidity's ``payable`` (may write the contract state
    and accept associated funds with transactions).
    """

    @classmethod
    def from_json(cls, entry: Mapping[str, Any]) -> "Mutability":
        """
        Extracts the mutability from a JSON ABI entry.
        Entries produced by old compilers only have ``constant`` and ``payable`` flags.
        """
        if "stateMutability" not in entry:
            if entry.get("constant"):
                return Mutability.VIEW
            if entry.get("payable"):
                return Mutability.PAYABLE
            return Mutability.NONPAYABLE

        values = {mutability.value: mutability for mutability in Mutability}
        if entry["stateMutability"] not in values:
            raise InvalidABI(f"Unknown mutability identifier: {entry['stateMutability']}")
        return values[entry["stateMutability"]]

    @property
    def payable(self) -> bool:
        return self == Mutability.PAYABLE

    @property
    def mutating(self) -> bool:
        return self in {Mutability.PAYABLE, Mutability.NONPAYABLE}


class EntryKind(Enum):
    """The kind of a JSON ABI entry."""

    FUNCTION = "function"
    EVENT = "event"
    ERROR = "error"
    CONSTRUCTOR = "constructor"
    FALLBACK = "fallback"
    RECEIVE = "receive"


@dataclass(frozen=True)
class Parameter:
    """A method parameter, a method output, or an event/error field."""

    name: None | str
    """The declared name, or ``None`` if the field is anonymous."""

    type: Type
    """The declared type."""

    internal_type: None | str = None
    """The compiler-specific ``internalType`` annotation, if present."""

    indexed: bool = False
    """Whether the field is stored in a log topic (for event fields)."""

    @classmethod
    def from_json(cls, entry: ABI_JSON) -> "Parameter":
        if not isinstance(entry, Mapping):
            raise InvalidABI(f"A parameter entry must be a JSON object, got {entry!r}")
        internal_type = entry.get("internalType")
        return cls(
            name=parameter_name(entry),
            type=dispatch_type(entry),
            internal_type=internal_type if isinstance(internal_type, str) else None,
            indexed=bool(entry.get("indexed", False)),
        )

    @property
    def detailed_type(self) -> str:
        """The most specific type description available."""
        return self.internal_type or self.type.canonical_form


def _parameters_from_json(entry: Mapping[str, Any], key: str) -> tuple[Parameter, ...]:
    parameters = entry.get(key, [])
    if not isinstance(parameters, list):
        raise InvalidABI(f"`{key}` must be a list")
    return tuple(Parameter.from_json(parameter) for parameter in parameters)


def _signature(name: str, parameters: Sequence[Parameter]) -> str:
    return name + "(" + ",".join(param.type.canonical_form for param in parameters) + ")"


def _detailed_signature(name: str, parameters: Sequence[Parameter]) -> str:
    return name + "(" + ",".join(param.detailed_type for param in parameters) + ")"


def _name_from_json(entry: Mapping[str, Any]) -> str:
    name = entry.get("name")
    if not isinstance(name, str) or not name:
        raise InvalidABI(f"A `{entry['type']}` entry must have a non-empty `name`")
    return name


@dataclass(frozen=True)
class Constructor:
    """Contract constructor."""

    inputs: tuple[Parameter, ...]
    """Input signature."""

    mutability: Mutability = Mutability.NONPAYABLE

    @classmethod
    def from_json(cls, entry: Mapping[str, Any]) -> "Constructor":
        """Creates this object from a JSON ABI constructor entry."""
        if entry.get("outputs"):
            raise InvalidABI("Constructor's JSON entry cannot have non-empty `outputs`")
        mutability = Mutability.from_json(entry)
        if mutability not in (Mutability.NONPAYABLE, Mutability.PAYABLE):
            raise InvalidABI(
                "Constructor's JSON entry state mutability must be `nonpayable` or `payable`"
            )
        return cls(inputs=_parameters_from_json(entry, "inputs"), mutability=mutability)

    @property
    def kind(self) -> EntryKind:
        return EntryKind.CONSTRUCTOR

    @property
    def payable(self) -> bool:
        """Whether this method is marked as payable."""
        return self.mutability.payable

    def __str__(self) -> str:
        return f"constructor{_signature('', self.inputs)} {self.mutability.value}"


@dataclass(frozen=True)
class Function:
    """A regular contract method."""

    name: str
    """The name of this method."""

    inputs: tuple[Parameter, ...]
    """The input signature of this method."""

    outputs: tuple[Parameter, ...]
    """The output signature of this method."""

    mutability: Mutability

    @classmethod
    def from_json(cls, entry: Mapping[str, Any]) -> "Function":
        """Creates this object from a JSON ABI method entry."""
        return cls(
            name=_name_from_json(entry),
            inputs=_parameters_from_json(entry, "inputs"),
            outputs=_parameters_from_json(entry, "outputs"),
            mutability=Mutability.from_json(entry),
        )

    @property
    def kind(self) -> EntryKind:
        return EntryKind.FUNCTION

    @cached_property
    def signature(self) -> str:
        """The canonical signature of this method (e.g. ``transfer(address,uint256)``)."""
        return _signature(self.name, self.inputs)

    @cached_property
    def detailed_signature(self) -> str:
        """The signature using ``internalType`` annotations where available."""
        return _detailed_signature(self.name, self.inputs)

    @cached_property
    def selector(self) -> bytes:
        """Method's selector."""
        return keccak(self.signature.encode())[:SELECTOR_LENGTH]

    def __str__(self) -> str:
        returns = "" if not self.outputs else f" returns {_signature('', self.outputs)}"
        return f"function {self.signature} {self.mutability.value}{returns}"


@dataclass(frozen=True)
class Event:
    """A contract event."""

    name: str
    """The name of this event."""

    inputs: tuple[Parameter, ...]
    """The event fields."""

    anonymous: bool = False
    """Whether the event is anonymous."""

    @classmethod
    def from_json(cls, entry: Mapping[str, Any]) -> "Event":
        """Creates this object from a JSON ABI event entry."""
        return cls(
            name=_name_from_json(entry),
            inputs=_parameters_from_json(entry, "inputs"),
            anonymous=bool(entry.get("anonymous", False)),
        )

    def __post_init__(self) -> None:
        indexed_num = sum(param.indexed for param in self.inputs)
        if self.anonymous and indexed_num > ANONYMOUS_EVENT_INDEXED_FIELDS:
            raise InvalidABI(
                f"Anonymous events can have at most {ANONYMOUS_EVENT_INDEXED_FIELDS} indexed fields"
            )
        if not self.anonymous and indexed_num > EVENT_INDEXED_FIELDS:
            raise InvalidABI(
                f"Non-anonymous events can have at most {EVENT_INDEXED_FIELDS} indexed fields"
            )

    @property
    def kind(self) -> EntryKind:
        return EntryKind.EVENT

    @cached_property
    def signature(self) -> str:
        return _signature(self.name, self.inputs)

    @cached_property
    def detailed_signature(self) -> str:
        return _detailed_signature(self.name, self.inputs)

    @cached_property
    def topic(self) -> LogTopic:
        """The topic representing this event's signature."""
        return LogTopic(keccak(self.signature.encode()))

    @cached_property
    def selector(self) -> bytes:
        """The full topic hash, used to tell overloaded events apart."""
        return bytes(self.topic)

    def __str__(self) -> str:
        fields = ", ".join(
            param.type.canonical_form
            + (" indexed" if param.indexed else "")
            + ((" " + param.name) if param.name else "")
            for param in self.inputs
        )
        return f"event {self.name}({fields})" + (" anonymous" if self.anonymous else "")


@dataclass(frozen=True)
class Error:
    """A custom contract error."""

    name: str
    """The name of the error structure."""

    inputs: tuple[Parameter, ...]
    """The fields of the structure."""

    @classmethod
    def from_json(cls, entry: Mapping[str, Any]) -> "Error":
        """Creates this object from a JSON ABI error entry."""
        return cls(name=_name_from_json(entry), inputs=_parameters_from_json(entry, "inputs"))

    @property
    def kind(self) -> EntryKind:
        return EntryKind.ERROR

    @cached_property
    def signature(self) -> str:
        return _signature(self.name, self.inputs)

    @cached_property
    def detailed_signature(self) -> str:
        return _detailed_signature(self.name, self.inputs)

    @cached_property
    def selector(self) -> bytes:
        """Error's selector."""
        return keccak(self.signature.encode())[:SELECTOR_LENGTH]

    def __str__(self) -> str:
        return f"error {self.signature}"


@dataclass(frozen=True)
class Fallback:
    """A fallback method."""

    mutability: Mutability = Mutability.NONPAYABLE

    @classmethod
    def from_json(cls, entry: Mapping[str, Any]) -> "Fallback":
        mutability = Mutability.from_json(entry)
        if mutability not in (Mutability.NONPAYABLE, Mutability.PAYABLE):
            raise InvalidABI(
                "Fallback method's JSON entry state mutability must be `nonpayable` or `payable`"
            )
        return cls(mutability=mutability)

    @property
    def kind(self) -> EntryKind:
        return EntryKind.FALLBACK


@dataclass(frozen=True)
class Receive:
    """A receive method."""

    mutability: Mutability = Mutability.PAYABLE

    @classmethod
    def from_json(cls, entry: Mapping[str, Any]) -> "Receive":
        mutability = Mutability.from_json(entry)
        if mutability != Mutability.PAYABLE:
            raise InvalidABI("Receive method's JSON entry state mutability must be `payable`")
        return cls(mutability=mutability)

    @property
    def kind(self) -> EntryKind:
        return EntryKind.RECEIVE


ABIEntry = Constructor | Function | Event | Error | Fallback | Receive
"""A single entry of a contract ABI."""

_ENTRY_TYPES: dict[str, type[ABIEntry]] = {
    "constructor": Constructor,
    "function": Function,
    "event": Event,
    "error": Error,
    "fallback": Fallback,
    "receive": Receive,
}


def parse_abi(json_abi: str | ABI_JSON) -> tuple[ABIEntry, ...]:
    """
    Parses a JSON ABI (either as text or as already decoded JSON)
    into a sequence of entries, preserving the declaration order.
    """
    if isinstance(json_abi, str):
        try:
            json_abi = json.loads(json_abi)
        except JSONDecodeError as exc:
            raise InvalidABI(f"Could not parse the ABI JSON: {exc}") from exc

    if not isinstance(json_abi, list):
        raise InvalidABI("The ABI must be a JSON list of entries")

    entries: list[ABIEntry] = []
    for position, entry in enumerate(json_abi):
        if not isinstance(entry, Mapping):
            raise InvalidABI(f"ABI entry #{position} must be a JSON object")

        # `type` can be omitted, defaulting to "function"
        entry_type = entry.get("type", "function")
        if entry_type not in _ENTRY_TYPES:
            raise InvalidABI(f"Unknown ABI entry type: {entry_type}")
        entry = {**entry, "type": entry_type}

        try:
            parsed = _ENTRY_TYPES[entry_type].from_json(entry)
        except BindingError as exc:
            name = entry.get("name")
            raise exc.within(f"{entry_type} `{name}`" if name else f"{entry_type} #{position}")

        if isinstance(parsed, Constructor | Fallback | Receive) and any(
            isinstance(existing, type(parsed)) for existing in entries
        ):
            raise InvalidABI(f"JSON ABI contains more than one {entry_type} declarations")

        entries.append(parsed)

    return tuple(entries)
