import logging
import re
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ethereum_rpc import Address, keccak

from ._errors import BindingError, CyclicLibraryDependency, UnresolvedLibraryPlaceholder

if TYPE_CHECKING:  # pragma: no cover
    from ._assembler import BindingSet, ContractBinding

logger = logging.getLogger(__name__)

FINGERPRINT_LENGTH = 34
"""The number of hex characters of the library name hash kept in a placeholder."""

PLACEHOLDER_RE = re.compile(r"__\$([0-9a-fA-F]{34})\$__")
"""A library address placeholder as emitted by ``solc``."""

PLACEHOLDER_LENGTH = 40
"""The length of a placeholder in hex characters (the length of a hex-encoded address)."""

_HEX_PREFIX = "0x"


def library_fingerprint(fully_qualified_name: str) -> str:
    """
    Returns the placeholder fingerprint for a library
    given its fully qualified name (e.g. ``contracts/Math.sol:Math``).
    """
    return keccak(fully_qualified_name.encode()).hex()[:FINGERPRINT_LENGTH]


def _normalize_fingerprint(fingerprint: str) -> str:
    normalized = fingerprint.removeprefix(_HEX_PREFIX).lower()
    if len(normalized) != FINGERPRINT_LENGTH or any(
        c not in "0123456789abcdef" for c in normalized
    ):
        raise BindingError(
            f"A library fingerprint must be {FINGERPRINT_LENGTH} hex characters, "
            f"got `{fingerprint}`"
        )
    return normalized


@dataclass(frozen=True)
class LibraryPlaceholder:
    """All the occurrences of a library address placeholder in a bytecode."""

    fingerprint: str
    """The truncated hash of the library's fully qualified name (lowercase hex)."""

    offsets: tuple[int, ...]
    """Byte offsets of the placeholder occurrences (in the bytecode without the ``0x`` prefix)."""

    library: None | str = None
    """The library name, if known."""

    @property
    def placeholder(self) -> str:
        """The placeholder text as it appears in the bytecode."""
        return f"__${self.fingerprint}$__"


def scan_placeholders(
    bytecode: str, library_names: Mapping[str, str] = {}
) -> tuple[LibraryPlaceholder, ...]:
    """
    Finds all the library placeholders in a hex-encoded bytecode,
    in the order of the first occurrence.
    ``library_names`` maps fingerprints to library names.
    """
    code = bytecode.removeprefix(_HEX_PREFIX)

    offsets: dict[str, list[int]] = {}
    for match in PLACEHOLDER_RE.finditer(code):
        start = match.start()
        if start % 2 != 0:
            raise BindingError(f"Library placeholder at a non-byte-aligned position {start}")
        offsets.setdefault(match.group(1).lower(), []).append(start // 2)

    remainder = PLACEHOLDER_RE.sub("", code)
    if len(remainder) % 2 != 0 or any(c not in "0123456789abcdefABCDEF" for c in remainder):
        raise BindingError("The bytecode is not a hex string")

    return tuple(
        LibraryPlaceholder(
            fingerprint=fingerprint,
            offsets=tuple(fingerprint_offsets),
            library=library_names.get(fingerprint),
        )
        for fingerprint, fingerprint_offsets in offsets.items()
    )


def substitute_addresses(
    bytecode: str,
    placeholders: Iterable[LibraryPlaceholder],
    addresses: Mapping[str, Address],
) -> str:
    """
    Replaces every placeholder occurrence with the corresponding library address.
    ``addresses`` can be keyed by either fingerprints or library names.

    Every address is looked up before anything is substituted,
    so a missing one leaves no partially linked result.
    """
    has_prefix = bytecode.startswith(_HEX_PREFIX)
    code = bytecode.removeprefix(_HEX_PREFIX)

    replacements: list[tuple[int, str]] = []
    for placeholder in placeholders:
        if placeholder.fingerprint in addresses:
            address = addresses[placeholder.fingerprint]
        elif placeholder.library is not None and placeholder.library in addresses:
            address = addresses[placeholder.library]
        else:
            raise UnresolvedLibraryPlaceholder(
                placeholder.fingerprint, placeholder.library, placeholder.offsets
            )
        address_hex = bytes(address).hex()
        replacements.extend((offset * 2, address_hex) for offset in placeholder.offsets)

    chunks = []
    position = 0
    for start, address_hex in sorted(replacements):
        chunks.append(code[position:start])
        chunks.append(address_hex)
        position = start + PLACEHOLDER_LENGTH
    chunks.append(code[position:])

    linked = "".join(chunks)
    return (_HEX_PREFIX + linked) if has_prefix else linked


class LibraryLinker:
    """
    Finds library placeholders in bytecode and substitutes deployed library addresses.

    ``libraries`` maps library names to their fingerprints,
    and is used to give names to the found placeholders.
    """

    def __init__(self, libraries: Mapping[str, str] = {}):
        self._names = {
            _normalize_fingerprint(fingerprint): name for name, fingerprint in libraries.items()
        }

    def library_name(self, fingerprint: str) -> None | str:
        """Returns the name of the library with the given fingerprint, if known."""
        return self._names.get(fingerprint.lower())

    def scan(self, bytecode: str) -> tuple[LibraryPlaceholder, ...]:
        """Returns all the placeholders in ``bytecode``, in the order of the first occurrence."""
        return scan_placeholders(bytecode, self._names)

    def link(self, bytecode: str, addresses: Mapping[str, Address]) -> str:
        """
        Returns ``bytecode`` with every placeholder replaced by the address of its library.
        ``addresses`` can be keyed by either fingerprints or library names.

        Raises :py:class:`UnresolvedLibraryPlaceholder` if an address is missing.
        Bytecode without placeholders is returned unchanged.
        """
        placeholders = self.scan(bytecode)
        linked = substitute_addresses(bytecode, placeholders, addresses)
        logger.debug(
            "Linked %d placeholder(s) at %d offset(s)",
            len(placeholders),
            sum(len(placeholder.offsets) for placeholder in placeholders),
        )
        return linked


def deployment_order(dependencies: Mapping[str, Sequence[str]], name: str) -> list[str]:
    """
    Returns the libraries (transitively) required by ``name``, dependencies first.
    ``dependencies`` maps each contract to the libraries its bytecode references.

    Raises :py:class:`CyclicLibraryDependency` if libraries reference each other in a cycle.
    """
    order: list[str] = []
    visited: set[str] = set()

    def visit(current: str, path: list[str]) -> None:
        for library in dependencies.get(current, []):
            if library in path:
                cycle = path[path.index(library) :]
                raise CyclicLibraryDependency([*cycle, library])
            if library in visited:
                continue
            visit(library, [*path, library])
            visited.add(library)
            order.append(library)

    visit(name, [name])
    return order


DeployCallback = Callable[["ContractBinding", str], Awaitable[Address]]
"""
Deploys the given contract with its final (linked) bytecode and returns its address.
Constructor arguments and transaction details are the callback's responsibility.
"""


async def link_and_deploy(
    bindings: "BindingSet",
    name: str,
    deploy: DeployCallback,
    *,
    addresses: Mapping[str, Address] = {},
) -> Address:
    """
    Deploys the contract ``name`` after deploying the libraries it needs
    (unless their addresses are given in ``addresses``, keyed by library name or fingerprint),
    and returns its address.
    """
    deployed = dict(addresses)

    for library in bindings.deployment_order(name):
        fingerprint = bindings.fingerprint(library)
        if library in deployed or (fingerprint is not None and fingerprint in deployed):
            continue
        binding = bindings[library]
        bytecode = binding.link(deployed)
        deployed[library] = await deploy(binding, bytecode)
        logger.debug("Deployed library %s at %s", library, deployed[library])

    binding = bindings[name]
    return await deploy(binding, binding.link(deployed))
