"""Template persistence contract and an in-memory implementation."""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Iterable

    from funder_export.types import ExportTemplate

__all__ = ["InMemoryTemplateRepository", "TemplateRepository"]


class TemplateRepository(Protocol):
    """Storage for template aggregates, keyed by template id."""

    def get(self, template_id: str) -> ExportTemplate | None: ...

    def list(self) -> list[ExportTemplate]: ...

    def save(self, template: ExportTemplate) -> None: ...


class InMemoryTemplateRepository:
    """Dictionary-backed repository; hands out copies so callers must ``save``."""

    def __init__(self, templates: Iterable[ExportTemplate] = ()) -> None:
        self._templates: dict[str, ExportTemplate] = {}
        for template in templates:
            self.save(template)

    def get(self, template_id: str) -> ExportTemplate | None:
        template = self._templates.get(template_id)
        return copy.deepcopy(template) if template is not None else None

    def list(self) -> list[ExportTemplate]:
        return [copy.deepcopy(t) for t in self._templates.values()]

    def save(self, template: ExportTemplate) -> None:
        self._templates[template.id] = copy.deepcopy(template)
