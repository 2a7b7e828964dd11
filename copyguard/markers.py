"""
Inert markers recognised by the copyguard analyzers.

Nothing in this module does anything at runtime: the analyzers look for
the markers in source code and never import user code.

    from typing import Annotated, final
    from copyguard import CopyIgnore, deep_copy

    @final
    @dataclass
    class Settings:
        name: str
        cache: Annotated[dict[str, bytes], CopyIgnore]

    @deep_copy
    def clone(settings: Settings) -> Settings:
        return Settings(name=settings.name, cache={})
"""

from __future__ import annotations

from typing import Any, Callable, TypeVar

_F = TypeVar("_F", bound=Callable[..., Any])


def deep_copy(func: _F) -> _F:
    """Mark *func* as a copy procedure. Returns *func* unchanged."""
    return func


def copy_ignore(func: _F) -> _F:
    """Exempt a property from copy verification. Returns *func* unchanged."""
    return func


class _CopyIgnoreType:
    __slots__ = ()

    def __repr__(self) -> str:
        return "CopyIgnore"

    def __call__(self) -> _CopyIgnoreType:
        return self


#: ``Annotated`` metadata exempting a field from copy verification.
CopyIgnore = _CopyIgnoreType()

#: Fully qualified names the analyzers accept for each marker.
COPY_PROCEDURE_MARKERS = frozenset({
    "copyguard.deep_copy",
    "copyguard.markers.deep_copy",
})

EXEMPT_MARKERS = frozenset({
    "copyguard.CopyIgnore",
    "copyguard.markers.CopyIgnore",
    "copyguard.copy_ignore",
    "copyguard.markers.copy_ignore",
})
