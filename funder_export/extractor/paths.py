"""Field-path parsing and resolution.

A source path is either ``form:<slug>`` (a flat form-data lookup) or a
dotted path rooted at ``client``, ``program`` or ``enrollment``. Paths are
parsed once into small frozen dataclasses and resolved through the
:class:`FieldResolver` protocol, so the mapper never reflects over arbitrary
objects.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Protocol

from funder_export.errors import InvalidFieldPathError

__all__ = [
    "FORM_PREFIX",
    "ROOTS",
    "ClientField",
    "EnrollmentField",
    "FieldPath",
    "FieldResolver",
    "FormField",
    "ProgramField",
    "parse_field_path",
    "resolve_path",
]

FORM_PREFIX = "form:"


class FieldResolver(Protocol):
    """Capability interface for anything that can answer field paths."""

    def resolve_form(self, slug: str) -> Any:
        """Return the aggregated form value for ``slug`` or ``None``."""
        ...

    def resolve_root(self, root: str) -> Any:
        """Return the ``client``/``program``/``enrollment`` object or ``None``."""
        ...


@dataclass(frozen=True)
class FormField:
    slug: str

    def __str__(self) -> str:
        return f"{FORM_PREFIX}{self.slug}"


@dataclass(frozen=True)
class _DottedField:
    path: tuple[str, ...]
    root = ""

    def __str__(self) -> str:
        return ".".join((self.root, *self.path))


@dataclass(frozen=True)
class ClientField(_DottedField):
    root = "client"


@dataclass(frozen=True)
class ProgramField(_DottedField):
    root = "program"


@dataclass(frozen=True)
class EnrollmentField(_DottedField):
    root = "enrollment"


FieldPath = FormField | ClientField | ProgramField | EnrollmentField

ROOTS: dict[str, type[_DottedField]] = {
    "client": ClientField,
    "program": ProgramField,
    "enrollment": EnrollmentField,
}


@lru_cache(maxsize=1024)
def parse_field_path(raw: str) -> FieldPath:
    """Parse a source path string.

    Parameters
    ----------
    raw
        ``"form:dateOfBirth"`` or a dotted path such as ``"client.address.city"``.

    Returns
    -------
    FieldPath
        Parsed path.

    Raises
    ------
    InvalidFieldPathError
        If the path is empty, has an empty segment, has no segment after the
        root, or is rooted somewhere other than ``client``, ``program`` or
        ``enrollment``.
    """
    if raw.startswith(FORM_PREFIX):
        slug = raw[len(FORM_PREFIX) :]
        if not slug:
            msg = f"Invalid field path format: {raw!r} (empty form field slug)"
            raise InvalidFieldPathError(msg)
        return FormField(slug)

    parts = raw.split(".")
    if len(parts) < 2 or any(not part for part in parts):
        msg = f"Invalid field path format: {raw!r}"
        raise InvalidFieldPathError(msg)

    root, *rest = parts
    field_cls = ROOTS.get(root)
    if field_cls is None:
        msg = f"Invalid field path root {root!r} in {raw!r}; expected one of {', '.join(ROOTS)}"
        raise InvalidFieldPathError(msg)
    return field_cls(tuple(rest))  # type: ignore[return-value]


def _step(current: Any, key: str) -> Any:
    """Descend one level, or return ``None`` for non-object intermediates."""
    if isinstance(current, Mapping):
        return current.get(key)
    if key.startswith("_") or not hasattr(current, "__dict__"):
        return None
    return getattr(current, key, None)


def resolve_path(resolver: FieldResolver, path: FieldPath) -> Any:
    """Resolve ``path`` against ``resolver``; missing data yields ``None``."""
    if isinstance(path, FormField):
        return resolver.resolve_form(path.slug)

    current = resolver.resolve_root(path.root)
    for key in path.path:
        if current is None:
            return None
        current = _step(current, key)
    return current
