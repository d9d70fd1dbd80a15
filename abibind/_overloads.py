from collections.abc import Mapping, Sequence

from ._abi_entries import SELECTOR_LENGTH, Error, Event, Function
from ._errors import AmbiguousOverload, BindingError
from ._identifiers import IdentifierResolver
from ._target import SymbolKind

OverloadableEntry = Function | Event | Error


def _parse_selector(signature: str, selector: str) -> bytes:
    selector_hex = selector.removeprefix("0x")
    try:
        selector_bytes = bytes.fromhex(selector_hex)
    except ValueError as exc:
        raise BindingError(
            f"The selector override for `{signature}` is not a hex string: `{selector}`"
        ) from exc
    if len(selector_bytes) != SELECTOR_LENGTH:
        raise BindingError(
            f"The selector override for `{signature}` must be {SELECTOR_LENGTH} bytes long, "
            f"got {len(selector_bytes)}"
        )
    return selector_bytes


class OverloadResolver:
    """
    Assigns distinct exported names to entries sharing a raw name.

    Within a group of same-named entries the first one (in declaration order)
    gets the plain name, and the following ones get ``0``, ``1``, ... appended.

    Entries are told apart by their selector (the signature topic for events).
    ``signatures`` maps a canonical or a detailed signature (the one using ``internalType``,
    e.g. ``test(function (uint256) external)``) to a 4-byte selector in hex,
    which replaces the automatically derived one.
    """

    def __init__(self, identifiers: IdentifierResolver, signatures: Mapping[str, str] = {}):
        self._identifiers = identifiers
        self._overrides = {
            signature: _parse_selector(signature, selector)
            for signature, selector in signatures.items()
        }

    def selector(self, entry: OverloadableEntry) -> bytes:
        """Returns the selector override for the entry if there is one, or the derived selector."""
        if entry.detailed_signature in self._overrides:
            return self._overrides[entry.detailed_signature]
        if entry.signature in self._overrides:
            return self._overrides[entry.signature]
        return entry.selector

    def symbol_signature(self, entry: OverloadableEntry, group: Sequence[OverloadableEntry]) -> str:
        """
        Returns the signature identifying the entry in the identifier table:
        the canonical one, or the detailed one if the canonical one is shared within the group.
        """
        if any(
            other is not entry and other.signature == entry.signature for other in group
        ):
            return entry.detailed_signature
        return entry.signature

    def groups(
        self, entries: Sequence[OverloadableEntry]
    ) -> dict[str, list[OverloadableEntry]]:
        """Groups the entries by their raw names, preserving the declaration order."""
        groups: dict[str, list[OverloadableEntry]] = {}
        for entry in entries:
            groups.setdefault(entry.name, []).append(entry)
        return groups

    def check_distinct(self, group: Sequence[OverloadableEntry]) -> None:
        """Raises :py:class:`AmbiguousOverload` if two entries in the group cannot be told apart."""
        seen: dict[bytes, OverloadableEntry] = {}
        for entry in group:
            selector = self.selector(entry)
            if selector in seen:
                raise AmbiguousOverload(entry.signature)
            seen[selector] = entry

    def resolve(
        self,
        namespace: str,
        kind: SymbolKind,
        entries: Sequence[OverloadableEntry],
    ) -> list[str]:
        """
        Returns the exported names of ``entries`` (in the same order),
        registering them in ``namespace``.
        """
        groups = self.groups(entries)
        for group in groups.values():
            self.check_distinct(group)

        self._identifiers.reserve_aliases(
            namespace,
            [(entry.name, self.symbol_signature(entry, groups[entry.name])) for entry in entries],
        )

        names = []
        for entry in entries:
            group = groups[entry.name]
            names.append(
                self._identifiers.resolve(
                    namespace,
                    kind,
                    entry.name,
                    self.symbol_signature(entry, group),
                    overload_index=group.index(entry),
                )
            )
        return names
