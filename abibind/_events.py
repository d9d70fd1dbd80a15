from collections.abc import Sequence
from dataclasses import dataclass

from ethereum_rpc import LogTopic

from ._abi_entries import Event
from ._errors import BindingError
from ._identifiers import TYPES_NAMESPACE, IdentifierResolver, member_namespace
from ._overloads import OverloadResolver
from ._target import SymbolKind
from ._type_mapper import ArgSpec, TopicHash, TypeMapper


@dataclass(frozen=True)
class EventSpec:
    """A resolved contract event."""

    raw_name: str
    """The name declared in the ABI."""

    name: str
    """The exported name (unique among the events of the contract)."""

    type_name: str
    """The name of the decoded event type."""

    inputs: tuple[ArgSpec, ...]
    """All the event fields in declaration order."""

    anonymous: bool
    """Whether the event is anonymous (has no signature topic)."""

    signature: str
    """The canonical signature."""

    topic: None | LogTopic
    """The signature topic, or ``None`` for anonymous events."""

    filter_name: None | str = None
    """The name of the historical log iterator accessor (``None`` for anonymous events)."""

    watch_name: None | str = None
    """The name of the live subscription accessor (``None`` for anonymous events)."""

    @property
    def indexed_inputs(self) -> tuple[ArgSpec, ...]:
        """Fields stored in log topics."""
        return tuple(arg for arg in self.inputs if arg.indexed)

    @property
    def data_inputs(self) -> tuple[ArgSpec, ...]:
        """Fields stored in the log data."""
        return tuple(arg for arg in self.inputs if not arg.indexed)

    @property
    def filter_arguments(self) -> tuple[ArgSpec, ...]:
        """
        Fields a log query can filter on.
        Fields hashed in topics can only be matched by their hash.
        """
        return self.indexed_inputs if not self.anonymous else ()

    @property
    def has_accessors(self) -> bool:
        """Whether the contract offers a log iterator and a subscription for this event."""
        return not self.anonymous


class EventModelBuilder:
    """
    Builds the event specifications of a contract.

    Indexed fields of reference types (strings, byte strings, arrays and tuples)
    are stored in topics as hashes, so they are exposed as :py:class:`TopicHash`.
    """

    def __init__(
        self,
        identifiers: IdentifierResolver,
        type_mapper: TypeMapper,
        overloads: OverloadResolver,
    ):
        self._identifiers = identifiers
        self._type_mapper = type_mapper
        self._overloads = overloads

    def build(
        self,
        contract_name: str,
        contract_type_name: str,
        events: Sequence[Event],
    ) -> tuple[EventSpec, ...]:
        """
        Returns the specs for ``events`` in declaration order.

        The accessor names are claimed in the contract member namespace,
        so the contract functions must be resolved before this is called.
        """
        names = self._overloads.resolve(f"{contract_name}:events", SymbolKind.EVENT, events)
        specs = []
        for event, name in zip(events, names, strict=True):
            try:
                specs.append(self._build_event(contract_name, contract_type_name, event, name))
            except BindingError as exc:
                raise exc.within(f"event `{event.signature}`")
        return tuple(specs)

    def _build_event(
        self, contract_name: str, contract_type_name: str, event: Event, name: str
    ) -> EventSpec:
        namespace = f"event {contract_name}.{name}"
        inputs = []
        for position, parameter in enumerate(event.inputs):
            if parameter.indexed and parameter.type.hashed_in_topic:
                mapped_type = TopicHash()
            else:
                mapped_type = self._type_mapper.map_type(parameter.type, owner=contract_name)
            inputs.append(
                ArgSpec(
                    raw_name=parameter.name,
                    name=self._identifiers.resolve(
                        namespace, SymbolKind.FIELD, parameter.name, position=position
                    ),
                    abi_type=parameter.type,
                    mapped_type=mapped_type,
                    indexed=parameter.indexed,
                )
            )

        type_name = self._identifiers.derive(
            TYPES_NAMESPACE,
            SymbolKind.EVENT,
            contract_type_name + name,
            f"{contract_name}.{name}",
        )

        filter_name = None
        watch_name = None
        if not event.anonymous:
            members = member_namespace(contract_name)
            filter_name = self._identifiers.derive(
                members, SymbolKind.FUNCTION, "filter" + name, f"filter {name}"
            )
            watch_name = self._identifiers.derive(
                members, SymbolKind.FUNCTION, "watch" + name, f"watch {name}"
            )

        return EventSpec(
            raw_name=event.name,
            name=name,
            type_name=type_name,
            inputs=tuple(inputs),
            anonymous=event.anonymous,
            signature=event.signature,
            topic=None if event.anonymous else event.topic,
            filter_name=filter_name,
            watch_name=watch_name,
        )
