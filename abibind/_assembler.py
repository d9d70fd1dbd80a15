import logging
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType

from ethereum_rpc import Address

from ._abi_entries import (
    Constructor,
    Error,
    Event,
    Fallback,
    Function,
    Mutability,
    Parameter,
    Receive,
    parse_abi,
)
from ._abi_types import ABI_JSON
from ._errors import BindingError
from ._events import EventModelBuilder, EventSpec
from ._identifiers import TYPES_NAMESPACE, IdentifierResolver, IdentifierTable, member_namespace
from ._linker import LibraryLinker, LibraryPlaceholder, deployment_order, substitute_addresses
from ._overloads import OverloadResolver
from ._target import PYTHON, SymbolKind, Target
from ._type_mapper import (
    ArgSpec,
    DynamicSequence,
    FixedSequence,
    MappedType,
    StructType,
    TypeMapper,
)

logger = logging.getLogger(__name__)


class CallMode(Enum):
    """The ways a contract function can be invoked."""

    CALL = "call"
    """Only a free (non-transacting) call."""

    TRANSACT = "transact"
    """Only a transaction."""

    BOTH = "both"
    """A transaction, or a simulated call to obtain the outputs."""


@dataclass(frozen=True)
class ConstructorSpec:
    """A resolved contract constructor."""

    inputs: tuple[ArgSpec, ...]
    """The constructor parameters."""

    mutability: Mutability = Mutability.NONPAYABLE

    @property
    def payable(self) -> bool:
        return self.mutability.payable


@dataclass(frozen=True)
class FunctionSpec:
    """A resolved contract function."""

    raw_name: str
    """The name declared in the ABI."""

    name: str
    """The exported method name."""

    inputs: tuple[ArgSpec, ...]
    """The function parameters."""

    outputs: tuple[ArgSpec, ...]
    """The function outputs."""

    mutability: Mutability

    signature: str
    """The canonical signature."""

    selector: bytes
    """The 4-byte selector (possibly overridden by the caller)."""

    output_type_name: None | str = None
    """The name of the output structure if the function returns more than one value."""

    @property
    def call_mode(self) -> CallMode:
        """How the function can be invoked, based on its mutability."""
        if not self.mutability.mutating:
            return CallMode.CALL
        if self.outputs:
            return CallMode.BOTH
        return CallMode.TRANSACT

    @property
    def structured_output(self) -> bool:
        """
        Whether the outputs are returned as a structure.
        A single output is returned as a plain value, no outputs as nothing.
        """
        return len(self.outputs) > 1

    @property
    def payable(self) -> bool:
        return self.mutability.payable


@dataclass(frozen=True)
class ErrorSpec:
    """A resolved custom error."""

    raw_name: str
    """The name declared in the ABI."""

    name: str
    """The exported name (unique among the errors of the contract)."""

    type_name: str
    """The name of the error type."""

    inputs: tuple[ArgSpec, ...]
    """The error fields."""

    signature: str
    """The canonical signature."""

    selector: bytes
    """The 4-byte selector."""


@dataclass(frozen=True)
class ContractBinding:
    """Everything needed to render the bindings for one contract."""

    raw_name: str
    """The contract name as given in the input."""

    name: str
    """The exported type name."""

    constructor: ConstructorSpec
    """The constructor (a parameterless one if the ABI does not declare it)."""

    functions: tuple[FunctionSpec, ...]
    """Functions in declaration order."""

    events: tuple[EventSpec, ...]
    """Events in declaration order."""

    errors: tuple[ErrorSpec, ...]
    """Custom errors in declaration order."""

    bytecode: str
    """The deployment bytecode, possibly containing library placeholders."""

    library_refs: tuple[LibraryPlaceholder, ...]
    """Library placeholders found in the bytecode."""

    structs: tuple[StructType, ...]
    """Structures used by this contract, dependencies first."""

    fallback: None | Mutability = None
    """The mutability of the fallback method, if declared."""

    receive: bool = False
    """Whether a receive method is declared."""

    @property
    def requires_linking(self) -> bool:
        """Whether library addresses must be supplied before deployment."""
        return bool(self.library_refs)

    @property
    def function_signatures(self) -> Mapping[str, str]:
        """Function signatures by their selectors (as hex strings)."""
        return {function.selector.hex(): function.signature for function in self.functions}

    def link(self, addresses: Mapping[str, Address]) -> str:
        """
        Returns the bytecode with the library addresses substituted.
        ``addresses`` can be keyed by library names or fingerprints.
        """
        return substitute_addresses(self.bytecode, self.library_refs, addresses)


@dataclass(frozen=True)
class BindingSet:
    """The bindings produced in one generation run, keyed by the contract names."""

    contracts: Mapping[str, ContractBinding]
    """Contract bindings in the input order."""

    structs: tuple[StructType, ...]
    """All the structures (shared between contracts where possible), dependencies first."""

    identifiers: Mapping[tuple[str, SymbolKind, str, None | str], str]
    """All the exported names assigned during the run."""

    library_fingerprints: Mapping[str, str] = field(default_factory=dict)
    """Fingerprints of the known libraries by their names."""

    def __getitem__(self, name: str) -> ContractBinding:
        return self.contracts[name]

    def __iter__(self) -> Iterator[ContractBinding]:
        return iter(self.contracts.values())

    def __len__(self) -> int:
        return len(self.contracts)

    def fingerprint(self, library: str) -> None | str:
        """Returns the fingerprint of the library with the given name, if known."""
        if library in self.library_fingerprints:
            return self.library_fingerprints[library]
        return _fingerprint_from_references(self, library)

    def deployment_order(self, name: str) -> list[str]:
        """
        Returns the names of the libraries in this set that need to be deployed
        before the contract ``name``, dependencies first.
        """
        dependencies = {
            binding.raw_name: [
                ref.library
                for ref in binding.library_refs
                if ref.library is not None and ref.library in self.contracts
            ]
            for binding in self
        }
        return deployment_order(dependencies, name)


def _fingerprint_from_references(bindings: BindingSet, library: str) -> None | str:
    for binding in bindings:
        for ref in binding.library_refs:
            if ref.library == library:
                return ref.fingerprint
    return None


@dataclass(frozen=True)
class ContractSource:
    """The input for one contract."""

    name: str
    """The contract name."""

    abi: str | ABI_JSON
    """The JSON ABI, either as text or already decoded."""

    bytecode: str = ""
    """The hex-encoded deployment bytecode (may contain library placeholders)."""


@dataclass(frozen=True)
class BindingConfig:
    """Generation settings."""

    aliases: Mapping[str, str] = field(default_factory=dict)
    """
    Exported names to use verbatim, keyed by raw names
    (applies to all the overloads) or canonical signatures (applies to one overload).
    """

    signatures: Mapping[str, str] = field(default_factory=dict)
    """4-byte selectors (hex) keyed by canonical or detailed signatures."""

    libraries: Mapping[str, str] = field(default_factory=dict)
    """Placeholder fingerprints keyed by library names."""

    target: Target = PYTHON
    """The target language conventions."""


def _collect_structs(mapped_type: MappedType, collected: dict[int, StructType]) -> None:
    match mapped_type:
        case FixedSequence(element=element) | DynamicSequence(element=element):
            _collect_structs(element, collected)
        case StructType():
            for struct_field in mapped_type.fields:
                _collect_structs(struct_field.mapped_type, collected)
            collected.setdefault(id(mapped_type), mapped_type)


def _capitalize(name: str) -> str:
    return name[0].upper() + name[1:]


class _GenerationRun:
    """The components sharing the identifier table of one generation run."""

    def __init__(self, config: BindingConfig):
        self.table = IdentifierTable()
        self.identifiers = IdentifierResolver(self.table, config.target, config.aliases)
        self.type_mapper = TypeMapper(self.identifiers)
        self.overloads = OverloadResolver(self.identifiers, config.signatures)
        self.events = EventModelBuilder(self.identifiers, self.type_mapper, self.overloads)
        self.linker = LibraryLinker(config.libraries)
        self.libraries = dict(config.libraries)

    def assemble(self, sources: Sequence[ContractSource]) -> BindingSet:
        contracts: dict[str, ContractBinding] = {}
        for source in sources:
            if source.name in contracts:
                raise BindingError(f"Contract `{source.name}` is given more than once")
            try:
                contracts[source.name] = self.contract(source)
            except BindingError as exc:
                raise exc.within(f"contract `{source.name}`")

        bindings = BindingSet(
            contracts=MappingProxyType(contracts),
            structs=self.type_mapper.structs,
            identifiers=self.table.entries,
            library_fingerprints=MappingProxyType(
                {
                    name: fingerprint.removeprefix("0x").lower()
                    for name, fingerprint in self.libraries.items()
                }
            ),
        )

        for name in contracts:
            try:
                bindings.deployment_order(name)
            except BindingError as exc:
                raise exc.within(f"contract `{name}`")

        return bindings

    def arguments(
        self,
        namespace: str,
        kind: SymbolKind,
        parameters: Iterable[Parameter],
        owner: str,
    ) -> tuple[ArgSpec, ...]:
        return tuple(
            ArgSpec(
                raw_name=parameter.name,
                name=self.identifiers.resolve(namespace, kind, parameter.name, position=position),
                abi_type=parameter.type,
                mapped_type=self.type_mapper.map_type(parameter.type, owner=owner),
            )
            for position, parameter in enumerate(parameters)
        )

    def contract(self, source: ContractSource) -> ContractBinding:
        contract_name = source.name
        type_name = self.identifiers.resolve(TYPES_NAMESPACE, SymbolKind.CONTRACT, contract_name)

        entries = parse_abi(source.abi)

        constructor = ConstructorSpec(inputs=())
        fallback = None
        receive = False
        functions: list[Function] = []
        events: list[Event] = []
        errors: list[Error] = []
        for entry in entries:
            match entry:
                case Constructor():
                    try:
                        constructor = ConstructorSpec(
                            inputs=self.arguments(
                                f"constructor {contract_name}",
                                SymbolKind.PARAMETER,
                                entry.inputs,
                                contract_name,
                            ),
                            mutability=entry.mutability,
                        )
                    except BindingError as exc:
                        raise exc.within("constructor")
                case Function():
                    functions.append(entry)
                case Event():
                    events.append(entry)
                case Error():
                    errors.append(entry)
                case Fallback():
                    fallback = entry.mutability
                case Receive():
                    receive = True

        # Functions claim the member names before the event accessors do.
        function_specs = self.functions(contract_name, type_name, functions)
        event_specs = self.events.build(contract_name, type_name, events)
        error_specs = self.errors(contract_name, type_name, errors)

        try:
            library_refs = self.linker.scan(source.bytecode)
        except BindingError as exc:
            raise exc.within("bytecode")

        collected: dict[int, StructType] = {}
        all_arguments = [
            *constructor.inputs,
            *(arg for spec in function_specs for arg in (*spec.inputs, *spec.outputs)),
            *(arg for spec in event_specs for arg in spec.inputs),
            *(arg for spec in error_specs for arg in spec.inputs),
        ]
        for arg in all_arguments:
            _collect_structs(arg.mapped_type, collected)

        binding = ContractBinding(
            raw_name=contract_name,
            name=type_name,
            constructor=constructor,
            functions=function_specs,
            events=event_specs,
            errors=error_specs,
            bytecode=source.bytecode,
            library_refs=library_refs,
            structs=tuple(collected.values()),
            fallback=fallback,
            receive=receive,
        )

        logger.debug(
            "Assembled contract %s as %s: %d function(s), %d event(s), %d error(s), "
            "%d library reference(s)",
            contract_name,
            type_name,
            len(function_specs),
            len(event_specs),
            len(error_specs),
            len(library_refs),
        )

        return binding

    def functions(
        self, contract_name: str, type_name: str, functions: Sequence[Function]
    ) -> tuple[FunctionSpec, ...]:
        names = self.overloads.resolve(
            member_namespace(contract_name), SymbolKind.FUNCTION, functions
        )
        specs = []
        for function, name in zip(functions, names, strict=True):
            try:
                inputs = self.arguments(
                    f"function {contract_name}.{name}",
                    SymbolKind.PARAMETER,
                    function.inputs,
                    contract_name,
                )
                outputs = self.arguments(
                    f"outputs {contract_name}.{name}",
                    SymbolKind.FIELD,
                    function.outputs,
                    contract_name,
                )
                output_type_name = None
                if len(outputs) > 1:
                    output_type_name = self.identifiers.derive(
                        TYPES_NAMESPACE,
                        SymbolKind.STRUCT,
                        type_name + _capitalize(name) + "Output",
                        f"{contract_name}.{name} outputs",
                    )
            except BindingError as exc:
                raise exc.within(f"function `{function.signature}`")

            specs.append(
                FunctionSpec(
                    raw_name=function.name,
                    name=name,
                    inputs=inputs,
                    outputs=outputs,
                    mutability=function.mutability,
                    signature=function.signature,
                    selector=self.overloads.selector(function),
                    output_type_name=output_type_name,
                )
            )
        return tuple(specs)

    def errors(
        self, contract_name: str, type_name: str, errors: Sequence[Error]
    ) -> tuple[ErrorSpec, ...]:
        names = self.overloads.resolve(f"{contract_name}:errors", SymbolKind.ERROR, errors)
        specs = []
        for error, name in zip(errors, names, strict=True):
            try:
                inputs = self.arguments(
                    f"error {contract_name}.{name}",
                    SymbolKind.PARAMETER,
                    error.inputs,
                    contract_name,
                )
                error_type_name = self.identifiers.derive(
                    TYPES_NAMESPACE,
                    SymbolKind.ERROR,
                    type_name + name,
                    f"{contract_name}.{name}",
                )
            except BindingError as exc:
                raise exc.within(f"error `{error.signature}`")

            specs.append(
                ErrorSpec(
                    raw_name=error.name,
                    name=name,
                    type_name=error_type_name,
                    inputs=inputs,
                    signature=error.signature,
                    selector=self.overloads.selector(error),
                )
            )
        return tuple(specs)


class BindingAssembler:
    """
    Builds contract bindings from ABIs and bytecode.

    Every call to :py:meth:`assemble` is an independent generation run:
    the same inputs always produce the same bindings.
    """

    def __init__(self, config: BindingConfig = BindingConfig()):  # noqa: B008
        self._config = config

    @property
    def config(self) -> BindingConfig:
        return self._config

    def assemble(self, sources: Sequence[ContractSource]) -> BindingSet:
        """
        Returns the bindings for ``sources``.

        Raises a :py:class:`BindingError` subclass on any failure;
        no partial result is produced.
        """
        return _GenerationRun(self._config).assemble(sources)


def bind(
    sources: Sequence[ContractSource],
    *,
    aliases: Mapping[str, str] = {},
    signatures: Mapping[str, str] = {},
    libraries: Mapping[str, str] = {},
    target: Target = PYTHON,
) -> BindingSet:
    """Builds contract bindings from ABIs and bytecode. See :py:class:`BindingConfig`."""
    config = BindingConfig(
        aliases=aliases, signatures=signatures, libraries=libraries, target=target
    )
    return BindingAssembler(config).assemble(sources)
