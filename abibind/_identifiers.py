from collections.abc import Iterable, Mapping
from itertools import count
from types import MappingProxyType

from ._errors import BindingError, InvalidABI, NameCollision
from ._target import PYTHON, SymbolKind, Target

SymbolKey = tuple[str, SymbolKind, str, None | str]
"""
Namespace, kind, raw name (or ``#<position>`` for unnamed symbols),
and signature (or ``#<position>`` for the members of a parameter or field list).
"""

TYPES_NAMESPACE = "types"
"""The namespace of all the top-level types generated in one run."""

# The kinds of symbols that can be renamed by the user.
ALIASABLE_KINDS = frozenset(
    [
        SymbolKind.CONTRACT,
        SymbolKind.STRUCT,
        SymbolKind.EVENT,
        SymbolKind.ERROR,
        SymbolKind.FUNCTION,
    ]
)


def member_namespace(contract_name: str) -> str:
    """Returns the namespace of the methods and event accessors of a contract."""
    return f"contract {contract_name}"


def fold(name: str) -> str:
    """
    Returns the form used to detect collisions:
    names differing only in case or leading underscores are considered the same.
    """
    return name.lstrip("_").lower()


class IdentifierTable:
    """
    Exported names assigned during one generation run.

    Names are unique within a namespace modulo :py:func:`fold`.
    """

    def __init__(self) -> None:
        self._names: dict[SymbolKey, str] = {}
        # namespace -> folded name -> the symbol that owns it
        self._owners: dict[str, dict[str, str]] = {}

    def get(self, key: SymbolKey) -> None | str:
        return self._names.get(key)

    def owner(self, namespace: str, name: str) -> None | str:
        """Returns the description of the symbol that took ``name``, if any."""
        return self._owners.get(namespace, {}).get(fold(name))

    def add(self, key: SymbolKey, name: str, owner: str) -> None:
        namespace = key[0]
        if key in self._names:
            raise ValueError(f"Symbol {key} already has a name")
        if self.owner(namespace, name) is not None:
            raise ValueError(f"The name `{name}` is already taken in `{namespace}`")
        self._names[key] = name
        self._owners.setdefault(namespace, {})[fold(name)] = owner

    def names(self, namespace: str) -> list[str]:
        """Returns all the names assigned in the namespace, in assignment order."""
        return [name for key, name in self._names.items() if key[0] == namespace]

    @property
    def entries(self) -> Mapping[SymbolKey, str]:
        """A read-only view of all the assigned names."""
        return MappingProxyType(self._names)

    def __len__(self) -> int:
        return len(self._names)


class IdentifierResolver:
    """
    Derives exported names from raw ABI names,
    recording them in an :py:class:`IdentifierTable`.

    The rules, in order:

    1. an alias supplied for the raw name (or the full signature) is used verbatim;
    2. the target's naming style is applied, digit-leading names are prefixed,
       and reserved words get ``_`` appended;
    3. if the name is taken in the namespace (modulo case and leading underscores),
       the first free numeric suffix (``0``, ``1``, ...) is appended.
    """

    def __init__(
        self,
        table: IdentifierTable,
        target: Target = PYTHON,
        aliases: Mapping[str, str] = {},
    ):
        self._table = table
        self._target = target
        self._aliases = dict(aliases)
        # namespace -> folded alias names automatic names must keep clear of.
        # Every type lands in the types namespace, so all the aliases apply there.
        self._alias_names: dict[str, set[str]] = {
            TYPES_NAMESPACE: {fold(alias) for alias in aliases.values()}
        }

    @property
    def target(self) -> Target:
        return self._target

    @property
    def table(self) -> IdentifierTable:
        return self._table

    def alias(self, raw_name: str, signature: None | str = None) -> tuple[None | str, bool]:
        """
        Returns the alias for the symbol (if any),
        and whether it was given for this exact signature.
        """
        if signature is not None and signature in self._aliases:
            return self._aliases[signature], True
        return self._aliases.get(raw_name), False

    def reserve_aliases(
        self, namespace: str, symbols: Iterable[tuple[str, None | str]]
    ) -> None:
        """
        Keeps the aliases of ``symbols`` (raw names and signatures) out of reach
        of automatically derived names in ``namespace``.
        Must be called before any name in the namespace is resolved.
        """
        reserved = self._alias_names.setdefault(namespace, set())
        for raw_name, signature in symbols:
            alias, _exact = self.alias(raw_name, signature)
            if alias is not None:
                reserved.add(fold(alias))

    def base_name(self, kind: SymbolKind, raw_name: None | str, position: None | int = None) -> str:
        """Returns the name according to the naming rules, disregarding collisions."""
        name = self._target.convert(kind, raw_name) if raw_name else ""
        if not name:
            if position is not None:
                name = self._target.positional_name(kind, position)
            elif raw_name:
                # Names made only of `_` and `$` are legal in Solidity.
                name = self._target.escaped_name(kind)
            else:
                raise InvalidABI("Cannot derive an identifier from an empty name")
        if not name.isidentifier() or not name.isascii():
            raise InvalidABI(f"Cannot derive an identifier from `{raw_name}`")
        while self._target.is_reserved(kind, name):
            name += "_"
        return name

    def is_available(self, namespace: str, kind: SymbolKind, name: str) -> bool:
        if self._target.is_reserved(kind, name):
            return False
        if self._table.owner(namespace, name) is not None:
            return False
        # Automatically derived names keep clear of the names the user asked for.
        return kind not in ALIASABLE_KINDS or fold(name) not in self._alias_names.get(
            namespace, ()
        )

    def resolve(
        self,
        namespace: str,
        kind: SymbolKind,
        raw_name: None | str,
        signature: None | str = None,
        *,
        position: None | int = None,
        overload_index: int = 0,
    ) -> str:
        """
        Returns the exported name for the symbol, assigning one if it is seen for the first time.

        ``overload_index`` is the position of the symbol among the same-named overloads;
        members after the first one get a numeric suffix starting from ``0``.
        """
        # Same-named members of one list are distinct symbols.
        member = f"#{position}" if signature is None and position is not None else signature
        key: SymbolKey = (namespace, kind, raw_name or f"#{position}", member)
        existing = self._table.get(key)
        if existing is not None:
            return existing

        symbol = signature or raw_name or f"#{position}"

        alias, exact = (None, False)
        if raw_name and kind in ALIASABLE_KINDS:
            alias, exact = self.alias(raw_name, signature)

        if alias is not None and (exact or overload_index == 0):
            return self._claim_verbatim(key, kind, alias, symbol)

        base = alias if alias is not None else self.base_name(kind, raw_name, position)
        first_suffix = None if overload_index == 0 else overload_index - 1
        return self._claim_first_free(key, kind, base, symbol, first_suffix)

    def derive(self, namespace: str, kind: SymbolKind, base: str, symbol: str) -> str:
        """
        Returns a name built from an already exported one (e.g. an accessor name),
        with a numeric suffix appended if ``base`` is not available.
        ``symbol`` identifies the derived symbol in the table.
        """
        key: SymbolKey = (namespace, kind, symbol, None)
        existing = self._table.get(key)
        if existing is not None:
            return existing
        while self._target.is_reserved(kind, base):
            base += "_"
        return self._claim_first_free(key, kind, base, symbol, None)

    def _claim_verbatim(self, key: SymbolKey, kind: SymbolKind, name: str, symbol: str) -> str:
        namespace = key[0]
        if not name.isidentifier() or not name.isascii():
            raise BindingError(f"The alias `{name}` for `{symbol}` is not a valid identifier")
        if self._target.is_reserved(kind, name):
            raise NameCollision(name, "<reserved word>", symbol)
        owner = self._table.owner(namespace, name)
        if owner is not None:
            raise NameCollision(name, owner, symbol)
        self._table.add(key, name, symbol)
        return name

    def _claim_first_free(
        self,
        key: SymbolKey,
        kind: SymbolKind,
        base: str,
        symbol: str,
        first_suffix: None | int,
    ) -> str:
        namespace = key[0]
        if first_suffix is None:
            if self.is_available(namespace, kind, base):
                self._table.add(key, base, symbol)
                return base
            first_suffix = 0

        for suffix in count(first_suffix):
            candidate = f"{base}{suffix}"
            if self.is_available(namespace, kind, candidate):
                self._table.add(key, candidate, symbol)
                return candidate

        raise AssertionError("unreachable")  # pragma: no cover
