from collections.abc import Iterable


class BindingError(Exception):
    """
    The base class for all the errors raised while building contract bindings.

    Generation is all-or-nothing: any of these aborts the whole run.
    """

    message: str
    """The description of the problem."""

    context: tuple[str, ...]
    """Locations the error was raised in, outermost first."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message
        self.context = ()

    def within(self, location: str) -> "BindingError":
        """Prepends ``location`` to the context of this error and returns it."""
        self.context = (location, *self.context)
        return self

    def __str__(self) -> str:
        if not self.context:
            return self.message
        return " / ".join(self.context) + ": " + self.message


class InvalidABI(BindingError):
    """Raised on a malformed ABI entry or an unparsable type descriptor."""


class UnsupportedType(BindingError):
    """Raised when an ABI type has no counterpart in the target type system."""

    type_string: str
    """The offending type string."""

    def __init__(self, type_string: str):
        super().__init__(f"Unsupported type: `{type_string}`")
        self.type_string = type_string


class NameCollision(BindingError):
    """Raised when two symbols cannot be given distinct exported names."""

    name: str
    """The contested exported name."""

    symbols: tuple[str, str]
    """The raw names of both symbols."""

    def __init__(self, name: str, first: str, second: str):
        super().__init__(
            f"`{second}` cannot be exported as `{name}`, "
            f"the name is already taken by `{first}` (use an alias for renaming)"
        )
        self.name = name
        self.symbols = (first, second)


class AmbiguousOverload(BindingError):
    """
    Raised when two overloaded entries have identical derived signatures
    and no explicit selector override tells them apart.
    """

    signature: str
    """The shared signature."""

    def __init__(self, signature: str):
        super().__init__(
            f"More than one entry has the signature `{signature}`, "
            "provide a selector override to disambiguate them"
        )
        self.signature = signature


class UnresolvedLibraryPlaceholder(BindingError):
    """Raised when linking bytecode with a placeholder that has no address supplied."""

    fingerprint: str
    """The fingerprint of the missing library."""

    def __init__(self, fingerprint: str, library: None | str, offsets: Iterable[int]):
        library_str = f" (library `{library}`)" if library else ""
        offsets_str = ", ".join(str(offset) for offset in offsets)
        super().__init__(
            f"No address supplied for the placeholder `{fingerprint}`{library_str} "
            f"at byte offsets {offsets_str}"
        )
        self.fingerprint = fingerprint


class CyclicLibraryDependency(BindingError):
    """Raised when libraries reference each other in a cycle."""

    libraries: tuple[str, ...]
    """The libraries forming the cycle, in reference order."""

    def __init__(self, libraries: Iterable[str]):
        self.libraries = tuple(libraries)
        super().__init__("Cyclic library dependency: " + " -> ".join(self.libraries))
