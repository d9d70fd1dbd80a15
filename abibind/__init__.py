"""Typed contract bindings from Ethereum ABIs."""

from . import abi
from ._abi_entries import (
    Constructor,
    EntryKind,
    Error,
    Event,
    Fallback,
    Function,
    Mutability,
    Parameter,
    Receive,
    parse_abi,
)
from ._assembler import (
    BindingAssembler,
    BindingConfig,
    BindingSet,
    CallMode,
    ConstructorSpec,
    ContractBinding,
    ContractSource,
    ErrorSpec,
    FunctionSpec,
    bind,
)
from ._compiler import EVMVersion, compile_contract_file, sources_from_compiler_output
from ._errors import (
    AmbiguousOverload,
    BindingError,
    CyclicLibraryDependency,
    InvalidABI,
    NameCollision,
    UnresolvedLibraryPlaceholder,
    UnsupportedType,
)
from ._events import EventModelBuilder, EventSpec
from ._identifiers import IdentifierResolver, IdentifierTable
from ._linker import LibraryLinker, LibraryPlaceholder, library_fingerprint, link_and_deploy
from ._log_stream import (
    DecodedEvent,
    EventDecoder,
    EventDecodingError,
    EventIterator,
    EventSubscription,
    watch_events,
)
from ._overloads import OverloadResolver
from ._target import PYTHON, NamingStyle, SymbolKind, Target
from ._type_mapper import (
    AddressValue,
    ArgSpec,
    Boolean,
    DynamicBytes,
    DynamicSequence,
    FixedBytes,
    FixedSequence,
    FunctionReference,
    Integer,
    MappedType,
    StructType,
    Text,
    TopicHash,
    TypeMapper,
)

__all__ = [
    "PYTHON",
    "AddressValue",
    "AmbiguousOverload",
    "ArgSpec",
    "BindingAssembler",
    "BindingConfig",
    "BindingError",
    "BindingSet",
    "Boolean",
    "CallMode",
    "Constructor",
    "ConstructorSpec",
    "ContractBinding",
    "ContractSource",
    "CyclicLibraryDependency",
    "DecodedEvent",
    "DynamicBytes",
    "DynamicSequence",
    "EVMVersion",
    "EntryKind",
    "Error",
    "ErrorSpec",
    "Event",
    "EventDecoder",
    "EventDecodingError",
    "EventIterator",
    "EventModelBuilder",
    "EventSpec",
    "EventSubscription",
    "Fallback",
    "FixedBytes",
    "FixedSequence",
    "Function",
    "FunctionReference",
    "FunctionSpec",
    "IdentifierResolver",
    "IdentifierTable",
    "Integer",
    "InvalidABI",
    "LibraryLinker",
    "LibraryPlaceholder",
    "MappedType",
    "Mutability",
    "NameCollision",
    "NamingStyle",
    "OverloadResolver",
    "Parameter",
    "Receive",
    "StructType",
    "SymbolKind",
    "Target",
    "Text",
    "TopicHash",
    "TypeMapper",
    "UnresolvedLibraryPlaceholder",
    "UnsupportedType",
    "abi",
    "bind",
    "compile_contract_file",
    "library_fingerprint",
    "link_and_deploy",
    "parse_abi",
    "sources_from_compiler_output",
    "watch_events",
]
