from collections.abc import Mapping
from enum import Enum
from pathlib import Path
from typing import Any

import solcx

from ._assembler import ContractSource
from ._linker import library_fingerprint


class EVMVersion(Enum):
    """
    Supported EVM versions.
    Some may not be available depending on the compiler version.
    """

    HOMESTEAD = "homestead"
    """Homestead fork, Mar 14, 2016."""

    BYZANTIUM = "byzantium"
    """Byzantium fork, Oct 16, 2017."""

    CONSTANTINOPLE = "constantinople"
    """Constantinople fork, Feb 28, 2019."""

    ISTANBUL = "istanbul"
    """Istanbul fork, Dec 8, 2019."""

    BERLIN = "berlin"
    """Berlin fork, Apr 15, 2021."""

    LONDON = "london"
    """London fork, Aug 5, 2021."""

    PARIS = "paris"
    """Paris fork, Sep 15, 2022."""

    SHANGHAI = "shanghai"
    """Shanghai fork, Apr 12, 2023."""

    CANCUN = "cancun"
    """Cancun fork, Mar 13, 2024."""

    PRAGUE = "prague"
    """Prague fork, May 7, 2025."""


def sources_from_compiler_output(
    compiled: Mapping[str, Mapping[str, Any]],
) -> tuple[list[ContractSource], dict[str, str]]:
    """
    Converts the ``solc`` output (a mapping of ``<path>:<name>`` identifiers
    to the ``abi`` and ``bin`` values) to contract sources,
    and returns them along with the library fingerprints keyed by contract names.

    The bytecode is left unlinked.
    """
    sources = []
    libraries = {}
    for identifier, compiled_contract in compiled.items():
        _path, contract_name = identifier.rsplit(":", 1)
        sources.append(
            ContractSource(
                name=contract_name,
                abi=compiled_contract["abi"],
                bytecode=compiled_contract.get("bin", ""),
            )
        )
        # Any contract can be a library as far as placeholders are concerned;
        # the fingerprint is derived from the full identifier the compiler used.
        libraries[contract_name] = library_fingerprint(identifier)
    return sources, libraries


def compile_contract_file(
    path: str | Path,
    *,
    import_remappings: Mapping[str, str | Path] = {},
    optimize: bool = False,
    evm_version: None | EVMVersion = None,
) -> tuple[list[ContractSource], dict[str, str]]:
    """
    Compiles the Solidity file at the given ``path`` and returns the contract sources
    with unlinked bytecode, and the library fingerprints keyed by contract names
    (see :py:func:`sources_from_compiler_output`).

    Some ``evm_version`` values may not be available depending on the compiler version.
    If ``evm_version`` is not given, the compiler default is used.
    """
    path = Path(path).resolve()

    compiled = solcx.compile_files(
        [path],
        output_values=["abi", "bin"],
        evm_version=evm_version.value if evm_version else None,
        import_remappings=dict(import_remappings),
        optimize=optimize,
    )

    return sources_from_compiler_output(compiled)
