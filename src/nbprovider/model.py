from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .errors import CellIndexError


class CellKind(str, Enum):
    MARKDOWN = "markdown"
    CODE = "code"


class CellRunState(str, Enum):
    """Execution state the host shows for a cell."""

    IDLE = "idle"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class CellOutputItem:
    """One (mime, value) pair of an in-memory output."""

    mime: str
    value: Any


@dataclass
class CellOutput:
    """An in-memory output: an ordered list of items.

    metadata holds persisted fields the items cannot carry (stream name,
    execute_result tag and count, display metadata).
    """

    items: List[CellOutputItem] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def mimes(self) -> List[str]:
        return [item.mime for item in self.items]


@dataclass
class NotebookCellData:
    """A cell as produced by resolve(), before the host takes it over."""

    source: str
    language: str
    cell_kind: CellKind
    outputs: List[CellOutput] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class NotebookData:
    languages: List[str]
    metadata: Dict[str, Any]
    cells: List[NotebookCellData]


@dataclass
class NotebookCell:
    """A live cell owned by the host document."""

    index: int
    text: str
    language: str
    cell_kind: CellKind
    outputs: List[CellOutput] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class NotebookEdit:
    """A batch of cell edits applied to a document in one step."""

    operations: List[Tuple[str, int, Any]] = field(default_factory=list)

    def replace_cell_outputs(self, index: int, outputs: List[CellOutput]) -> None:
        self.operations.append(("outputs", index, list(outputs)))

    def replace_cell_metadata(self, index: int, metadata: Dict[str, Any]) -> None:
        self.operations.append(("metadata", index, dict(metadata)))


@dataclass
class NotebookDocument:
    """Minimal host-side notebook document.

    uri: identity of the document (file URI or path string).
    cells: live cells in document order.
    """

    uri: str
    cells: List[NotebookCell] = field(default_factory=list)
    languages: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_data(cls, uri: str, data: NotebookData) -> "NotebookDocument":
        cells = [
            NotebookCell(
                index=i,
                text=c.source,
                language=c.language,
                cell_kind=c.cell_kind,
                outputs=list(c.outputs),
                metadata=dict(c.metadata),
            )
            for i, c in enumerate(data.cells)
        ]
        return cls(
            uri=uri,
            cells=cells,
            languages=list(data.languages),
            metadata=dict(data.metadata),
        )

    def cell_at(self, index: int) -> NotebookCell:
        if not 0 <= index < len(self.cells):
            raise CellIndexError(index, len(self.cells))
        return self.cells[index]

    def apply_edit(self, edit: NotebookEdit) -> None:
        # Validate everything first so a bad index leaves the document untouched
        for _, index, _ in edit.operations:
            self.cell_at(index)
        for kind, index, payload in edit.operations:
            cell = self.cells[index]
            if kind == "outputs":
                cell.outputs = payload
            elif kind == "metadata":
                cell.metadata = payload
            else:
                raise ValueError(f"Unknown edit operation: {kind}")


@dataclass
class NotebookDocumentOpenContext:
    backup_id: Optional[str] = None


@dataclass
class NotebookDocumentBackupContext:
    destination: str
