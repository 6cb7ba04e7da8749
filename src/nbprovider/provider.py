from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

import nbformat

from . import storage
from .backend import CancellationToken, DelayedExecutionBackend, ExecutionBackend
from .config import ProviderConfig
from .errors import NotebookLoadError
from .kernels import EventEmitter, KernelProvider, KernelProviderRegistry
from .model import (
    CellKind,
    CellRunState,
    NotebookCell,
    NotebookData,
    NotebookDocument,
    NotebookDocumentBackupContext,
    NotebookDocumentOpenContext,
)
from .notebook import JupyterNotebook
from .outputs import to_persisted

logger = logging.getLogger(__name__)

_LINE_BREAK = re.compile(r"\r\n|\r|\n")


def placeholder_notebook() -> Dict:
    return {"cells": [{"cell_type": "markdown", "source": ["# header"]}]}


def split_source(text: str) -> List[str]:
    """Split cell text into nbformat source lines.

    Every line but the last keeps a trailing newline, so "".join() of the
    result gives the text back with line endings normalised to "\\n".
    """
    lines = _LINE_BREAK.split(text)
    return [line + "\n" for line in lines[:-1]] + [lines[-1]]


def cell_to_raw(cell: NotebookCell) -> Dict:
    raw: Dict = {
        "source": split_source(cell.text),
        "metadata": {"language_info": {"name": cell.language or "markdown"}},
        "cell_type": "markdown" if cell.cell_kind is CellKind.MARKDOWN else "code",
    }
    if cell.cell_kind is not CellKind.MARKDOWN:
        raw["outputs"] = [to_persisted(o) for o in cell.outputs]
        raw["execution_count"] = cell.metadata.get("execution_order")
    return raw


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class NotebookBackup:
    id: str
    delete: Callable[[], Awaitable[None]]


class NotebookProvider:
    """Opens, saves, backs up and executes Jupyter notebooks for a host.

    One JupyterNotebook is registered per open document URI until
    close_notebook() is called.
    """

    def __init__(
        self,
        config: Optional[ProviderConfig] = None,
        *,
        registry: Optional[KernelProviderRegistry] = None,
        backend: Optional[ExecutionBackend] = None,
    ):
        self.config = config or ProviderConfig()
        self.label = self.config.kernel_label
        self.is_preferred = True
        self.backend = backend or DelayedExecutionBackend(self.config.max_execution_delay)
        self._notebooks: Dict[str, JupyterNotebook] = {}
        self._inflight: Dict[str, List[Tuple[Optional[int], CancellationToken]]] = {}

        self.on_did_change_kernels = EventEmitter()
        self.registry = registry or KernelProviderRegistry()
        self._dispose_registration = self.registry.register(
            self.config.view_type,
            KernelProvider(lambda: [self], self.on_did_change_kernels),
        )
        self._announce_handle = None
        self._announced = False
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running loop, kernel announcement deferred")
        else:
            self._announce_handle = loop.call_later(
                self.config.kernel_announce_delay, self.announce_kernels
            )

    def announce_kernels(self) -> None:
        """Fire the kernels-changed event now (once per provider)."""
        if self._announce_handle is not None:
            self._announce_handle.cancel()
        self._announce_handle = None
        if self._announced:
            return
        self._announced = True
        self.on_did_change_kernels.fire(None)

    def dispose(self) -> None:
        if self._announce_handle is not None:
            self._announce_handle.cancel()
            self._announce_handle = None
        self._dispose_registration()
        for uri in list(self._notebooks):
            self.close_notebook(uri)

    # ---------- registry ----------

    def notebook_for(self, uri: str) -> Optional[JupyterNotebook]:
        return self._notebooks.get(uri)

    @property
    def open_uris(self) -> List[str]:
        return list(self._notebooks)

    def close_notebook(self, uri: str) -> bool:
        """Forget the model for uri and cancel its in-flight executions."""
        for _, token in self._inflight.pop(uri, []):
            token.cancel()
        removed = self._notebooks.pop(uri, None) is not None
        if removed:
            logger.debug("Closed %s", uri)
        return removed

    # ---------- open / revert ----------

    async def _read_json(self, uri: str) -> Dict:
        try:
            content = await storage.read_file(uri)
            return json.loads(content.decode("utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Could not read %s (%s), using placeholder document", uri, e)
            return placeholder_notebook()

    async def open_notebook(
        self, uri: str, context: Optional[NotebookDocumentOpenContext] = None
    ) -> NotebookData:
        actual_uri = context.backup_id if context and context.backup_id else uri
        data = await self._read_json(actual_uri)
        try:
            notebook = JupyterNotebook(
                self.config.extension_path,
                nbformat.from_dict(data),
                self.config.fill_outputs,
            )
            resolved = notebook.resolve()
        except Exception as e:
            raise NotebookLoadError("Failed to load the document") from e
        self._notebooks[uri] = notebook
        logger.debug("Opened %s (%d cells)", uri, len(resolved.cells))
        return resolved

    async def revert_notebook(self, document: NotebookDocument) -> NotebookData:
        """Re-read the document from storage and replace its model."""
        self.close_notebook(document.uri)
        return await self.open_notebook(document.uri)

    # ---------- save / backup ----------

    def serialize(self, document: NotebookDocument) -> bytes:
        cells = [cell_to_raw(c) for c in document.cells]
        notebook = self._notebooks.get(document.uri)
        if notebook is not None:
            notebook.notebook["cells"] = cells
            payload = notebook.notebook
        else:
            payload = {"cells": cells}
        text = json.dumps(payload, indent=self.config.indent, ensure_ascii=False)
        return text.encode("utf-8")

    async def _save(self, document: NotebookDocument, target: str) -> None:
        await storage.write_file(target, self.serialize(document))
        logger.debug("Saved %s to %s", document.uri, target)

    async def save_notebook(self, document: NotebookDocument) -> None:
        await self._save(document, document.uri)

    async def save_notebook_as(self, target: str, document: NotebookDocument) -> None:
        await self._save(document, target)

    async def backup_notebook(
        self, document: NotebookDocument, context: NotebookDocumentBackupContext
    ) -> NotebookBackup:
        destination = context.destination
        await self._save(document, destination)

        async def delete() -> None:
            await storage.delete_file(destination)

        return NotebookBackup(id=str(destination), delete=delete)

    # ---------- execution ----------

    async def execute_cell(
        self, document: NotebookDocument, cell_index: Optional[int] = None
    ) -> bool:
        """Run one cell (or all cells when cell_index is None).

        Returns False if the execution was cancelled before it ran.
        """
        cell = document.cell_at(cell_index) if cell_index is not None else None
        if cell is not None:
            cell.metadata["status_message"] = "Running"
            cell.metadata["run_start_time"] = _now_ms()
            cell.metadata["run_state"] = CellRunState.RUNNING

        notebook = self._notebooks.get(document.uri)
        token = CancellationToken()
        entry = (cell_index, token)
        self._inflight.setdefault(document.uri, []).append(entry)
        started = time.monotonic()
        try:
            if notebook is None:
                logger.warning("Execute requested for unopened document %s", document.uri)
                ran = False
            else:
                ran = await self.backend.run(notebook, document, cell_index, token)
        except Exception as e:
            if cell is not None:
                cell = document.cells[cell_index]
                cell.metadata["status_message"] = f"Failed: {e}"
                cell.metadata["run_state"] = CellRunState.ERROR
            raise
        finally:
            inflight = self._inflight.get(document.uri)
            if inflight is not None:
                if entry in inflight:
                    inflight.remove(entry)
                if not inflight:
                    del self._inflight[document.uri]
        duration = int((time.monotonic() - started) * 1000)

        if cell_index is not None:
            cell = document.cells[cell_index]
            if ran:
                cell.metadata["last_run_duration"] = duration
                cell.metadata["status_message"] = "Success"
                cell.metadata["run_state"] = CellRunState.SUCCESS
            else:
                cell.metadata["status_message"] = "Cancelled"
                cell.metadata["run_state"] = CellRunState.IDLE
        return ran

    async def execute_all_cells(self, document: NotebookDocument) -> bool:
        return await self.execute_cell(document, None)

    def cancel_cell_execution(self, document: NotebookDocument, cell_index: int) -> int:
        """Signal in-flight executions of one cell; returns how many."""
        count = 0
        for index, token in self._inflight.get(document.uri, []):
            if index == cell_index and not token.is_cancellation_requested:
                token.cancel()
                count += 1
        return count

    def cancel_all_cells_execution(self, document: NotebookDocument) -> int:
        count = 0
        for _, token in self._inflight.get(document.uri, []):
            if not token.is_cancellation_requested:
                token.cancel()
                count += 1
        return count
