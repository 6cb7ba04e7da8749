from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from .errors import CellIndexError
from .model import (
    CellKind,
    NotebookCellData,
    NotebookData,
    NotebookDocument,
    NotebookEdit,
)
from .outputs import HTML_MIME, contains_html, to_in_memory

logger = logging.getLogger(__name__)

DISPLAY_ORDER: List[str] = [
    "application/vnd.*",
    "application/json",
    "application/javascript",
    "text/html",
    "image/svg+xml",
    "text/markdown",
    "image/svg+xml",
    "image/png",
    "image/jpeg",
    "text/plain",
]

PRELOAD_ASSET = Path("dist") / "ipywidgets.js"
PRELOAD_SCHEME = "vscode-webview-resource"
DEFAULT_LANGUAGE = "python"


class OneShot(str, Enum):
    """Two-state flag: PENDING until it fires, then FIRED for good."""

    PENDING = "pending"
    FIRED = "fired"


def _meta_flag(meta: Dict, key: str) -> bool:
    val = meta.get(key)
    return True if val is None else val


def _join_source(source) -> str:
    if not source:
        return ""
    if isinstance(source, list):
        return "".join(source)
    return str(source)


class JupyterNotebook:
    """In-memory owner of one persisted Jupyter notebook.

    extension_path: base directory holding the preload asset.
    notebook: the persisted document (dict / NotebookNode with 'cells').
    fill_outputs: whether resolve() materialises outputs up front; when True
    run-all has nothing left to fill.
    """

    def __init__(self, extension_path: str, notebook: Dict, fill_outputs: bool):
        self.extension_path = extension_path
        self.notebook = notebook
        self.fill_state = OneShot.FIRED if fill_outputs else OneShot.PENDING
        self.preload_state = OneShot.PENDING
        self.next_execution_order = 0

    @property
    def fill_outputs(self) -> bool:
        return self.fill_state is OneShot.FIRED

    @property
    def cells(self) -> List[Dict]:
        return self.notebook["cells"]

    def _metadata(self) -> Dict:
        meta = self.notebook.get("metadata")
        return meta if isinstance(meta, dict) else {}

    def _language(self) -> str:
        info = self._metadata().get("language_info") or {}
        return info.get("name") or DEFAULT_LANGUAGE

    def resolve(self) -> NotebookData:
        meta = self._metadata()
        language = self._language()
        cells: List[NotebookCellData] = []
        for raw_cell in self.cells:
            outputs = []
            if self.fill_outputs:
                outputs = [to_in_memory(o) for o in raw_cell.get("outputs") or []]

            count = raw_cell.get("execution_count")
            execution_order = (
                count if isinstance(count, int) and not isinstance(count, bool) else None
            )
            if execution_order is not None and execution_order >= self.next_execution_order:
                self.next_execution_order = execution_order + 1

            cell_meta = raw_cell.get("metadata") or {}
            cells.append(
                NotebookCellData(
                    source=_join_source(raw_cell.get("source")),
                    language=language,
                    cell_kind=(
                        CellKind.CODE
                        if raw_cell.get("cell_type") == "code"
                        else CellKind.MARKDOWN
                    ),
                    outputs=outputs,
                    metadata={
                        "editable": cell_meta.get("editable"),
                        "runnable": cell_meta.get("runnable"),
                        "execution_order": execution_order,
                    },
                )
            )
        return NotebookData(
            languages=[DEFAULT_LANGUAGE],
            metadata={
                "editable": _meta_flag(meta, "editable"),
                "runnable": _meta_flag(meta, "runnable"),
                "cell_editable": _meta_flag(meta, "cellEditable"),
                "cell_runnable": _meta_flag(meta, "cellRunnable"),
                "display_order": list(DISPLAY_ORDER),
            },
            cells=cells,
        )

    def get_next_execution_order(self) -> int:
        order = self.next_execution_order
        self.next_execution_order += 1
        return order

    def preload_script_uri(self) -> str:
        file_uri = (Path(self.extension_path).resolve() / PRELOAD_ASSET).as_uri()
        return PRELOAD_SCHEME + file_uri[len("file"):]

    def _maybe_insert_preload(self, raw_cell: Dict) -> None:
        if self.preload_state is OneShot.FIRED or not contains_html(raw_cell):
            return
        self.preload_state = OneShot.FIRED
        script = {
            "output_type": "display_data",
            "data": {HTML_MIME: [f'<script src="{self.preload_script_uri()}"></script>\n']},
        }
        raw_cell["outputs"].insert(0, script)
        logger.debug("Inserted preload script into outputs")

    def _check_index(self, document: NotebookDocument, index: int) -> None:
        size = min(len(document.cells), len(self.cells))
        if not 0 <= index < size:
            raise CellIndexError(index, size)

    def _execute_one(self, document: NotebookDocument, index: int) -> None:
        raw_cell = self.cells[index]
        self._maybe_insert_preload(raw_cell)
        cell = document.cells[index]
        edit = NotebookEdit()
        edit.replace_cell_outputs(
            index, [to_in_memory(o) for o in raw_cell.get("outputs") or []]
        )
        edit.replace_cell_metadata(
            index, {**cell.metadata, "execution_order": self.get_next_execution_order()}
        )
        document.apply_edit(edit)

    def execute(self, document: NotebookDocument, cell_index: Optional[int] = None) -> None:
        """Apply persisted outputs and a fresh execution order to the host.

        With cell_index, only that cell. Without, run-all: every cell in
        document order, once per model; later run-all calls do nothing.
        """
        if cell_index is not None:
            self._check_index(document, cell_index)
            self._execute_one(document, cell_index)
            return

        if self.fill_state is OneShot.FIRED:
            logger.debug("Run-all skipped, outputs already filled for %s", document.uri)
            return
        for i in range(len(document.cells)):
            self._check_index(document, i)
        for i in range(len(document.cells)):
            self._execute_one(document, i)
        self.fill_state = OneShot.FIRED
