"""Export file naming and storage.

Finished files are stored under
``exports/<organization>/<YYYY>/<MM>/<export_id>/<filename>``. Object storage
is an external collaborator; :class:`LocalExportStorage` writes the same
layout to disk, with a JSON metadata sidecar next to each file.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, date, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from funder_export.config import DATA_DIR, setup_logging
from funder_export.errors import StorageError
from funder_export.generators import XLSX_CONTENT_TYPE

if TYPE_CHECKING:
    from funder_export.types import ExportType

logger = setup_logging(__name__)

__all__ = [
    "METADATA_SUFFIX",
    "ExportFileMetadata",
    "ExportStorage",
    "LocalExportStorage",
    "build_filename",
    "build_storage_key",
    "extension_for_content_type",
]

METADATA_SUFFIX = ".meta.json"


def build_filename(
    export_type: ExportType | str,
    period_start: date,
    period_end: date,
    extension: str,
) -> str:
    """Return ``<type-lower-hyphen>_export_<start>_to_<end>.<ext>``."""
    type_str = str(export_type).lower().replace("_", "-")
    return f"{type_str}_export_{period_start.isoformat()}_to_{period_end.isoformat()}.{extension}"


def build_storage_key(
    organization_id: str,
    export_id: str,
    filename: str,
    now: datetime | None = None,
) -> str:
    now = now or datetime.now(UTC)
    return f"exports/{organization_id}/{now.year}/{now.month:02d}/{export_id}/{filename}"


def extension_for_content_type(content_type: str) -> str:
    match content_type:
        case "text/csv":
            return "csv"
        case "text/plain":
            return "txt"
        case "application/xml" | "text/xml":
            return "xml"
        case _ if content_type == XLSX_CONTENT_TYPE:
            return "xlsx"
    return "dat"


@dataclass(frozen=True)
class ExportFileMetadata:
    export_id: str
    organization_id: str
    template_id: str
    export_type: str
    record_count: int
    generated_at: str
    period_start: str
    period_end: str
    generated_by: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class ExportStorage(Protocol):
    """Destination for finished export files."""

    def upload(
        self,
        export_id: str,
        organization_id: str,
        content: bytes,
        content_type: str,
        metadata: ExportFileMetadata,
    ) -> str:
        """Store ``content`` and return its storage key."""
        ...

    def download(self, key: str) -> bytes | None: ...

    def delete(self, key: str) -> bool: ...


class LocalExportStorage:
    """Filesystem storage rooted at ``root`` (defaults to ``DATA_DIR``)."""

    def __init__(self, root: Path | str | None = None) -> None:
        self.root = Path(root) if root is not None else DATA_DIR

    def path_for(self, key: str) -> Path:
        return self.root / key

    def upload(
        self,
        export_id: str,
        organization_id: str,
        content: bytes,
        content_type: str,
        metadata: ExportFileMetadata,
    ) -> str:
        filename = build_filename(
            metadata.export_type,
            date.fromisoformat(metadata.period_start),
            date.fromisoformat(metadata.period_end),
            extension_for_content_type(content_type),
        )
        key = build_storage_key(organization_id, export_id, filename)
        path = self.path_for(key)

        sidecar = {
            **metadata.to_dict(),
            "content_type": content_type,
            "filename": filename,
            "size": len(content),
        }
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)
            with Path(f"{path}{METADATA_SUFFIX}").open("w", encoding="utf-8") as f:
                json.dump(sidecar, f, indent=2)
        except OSError as exc:
            msg = f"Failed to store export {export_id}: {exc}"
            raise StorageError(msg) from exc

        logger.info("Stored export %s (%d bytes) at %s", export_id, len(content), key)
        return key

    def download(self, key: str) -> bytes | None:
        path = self.path_for(key)
        if not path.exists():
            return None
        return path.read_bytes()

    def read_metadata(self, key: str) -> dict[str, Any] | None:
        path = Path(f"{self.path_for(key)}{METADATA_SUFFIX}")
        if not path.exists():
            return None
        with path.open(encoding="utf-8") as f:
            return json.load(f)  # type: ignore[no-any-return]

    def delete(self, key: str) -> bool:
        path = self.path_for(key)
        if not path.exists():
            return False
        path.unlink()
        Path(f"{path}{METADATA_SUFFIX}").unlink(missing_ok=True)
        return True
