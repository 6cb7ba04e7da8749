from __future__ import annotations

from typing import Dict, Optional

from .errors import OutputDecodeError
from .model import CellOutput, CellOutputItem

STREAM_MIME = "application/x.notebook.stream"
ERROR_MIME = "application/x.notebook.error-traceback"
HTML_MIME = "text/html"

_DISPLAY_TYPES = {"display_data", "execute_result"}


def _join_text(text) -> str:
    if isinstance(text, list):
        return "".join(text)
    return text


def to_in_memory(raw: Dict) -> CellOutput:
    """Convert a persisted nbformat output dict to a CellOutput.

    - stream -> one item with STREAM_MIME, value is the (joined) text.
    - error -> one item with ERROR_MIME, value is {ename, evalue, traceback}.
    - display_data / execute_result -> one item per MIME key of 'data'.
    Anything else raises OutputDecodeError.
    """
    output_type = raw.get("output_type")
    if output_type in _DISPLAY_TYPES:
        data = raw.get("data") or {}
        items = [CellOutputItem(mime, value) for mime, value in data.items()]
        meta: Dict = {}
        if output_type == "execute_result":
            meta["output_type"] = "execute_result"
            if "execution_count" in raw:
                meta["execution_count"] = raw["execution_count"]
        if "metadata" in raw:
            meta["metadata"] = raw["metadata"]
        return CellOutput(items=items, metadata=meta)
    if output_type == "stream":
        meta = {"name": raw["name"]} if "name" in raw else {}
        return CellOutput(
            items=[CellOutputItem(STREAM_MIME, _join_text(raw.get("text", "")))],
            metadata=meta,
        )
    if output_type == "error":
        value = {
            "ename": raw.get("ename"),
            "evalue": raw.get("evalue"),
            "traceback": raw.get("traceback"),
        }
        return CellOutput(items=[CellOutputItem(ERROR_MIME, value)])
    raise OutputDecodeError(f"Unknown output_type: {output_type!r}")


def _first_item(output: CellOutput, mime: str) -> Optional[CellOutputItem]:
    return next((item for item in output.items if item.mime == mime), None)


def to_persisted(output: CellOutput) -> Dict:
    """Convert a CellOutput back to a persisted nbformat output dict."""
    stream = _first_item(output, STREAM_MIME)
    if stream is not None:
        # nbformat v4 requires a stream name
        return {
            "output_type": "stream",
            "name": output.metadata.get("name", "stdout"),
            "text": stream.value or "",
        }

    error = _first_item(output, ERROR_MIME)
    if error is not None:
        value = error.value or {}
        if not isinstance(value, dict):
            raise OutputDecodeError(
                f"Error output value must be a mapping, got {type(value).__name__}"
            )
        return {
            "output_type": "error",
            "ename": value.get("ename"),
            "evalue": value.get("evalue"),
            "traceback": value.get("traceback"),
        }

    # Each MIME maps to its own item's value
    data = {item.mime: item.value for item in output.items}
    if output.metadata.get("output_type") == "execute_result":
        rec = {"output_type": "execute_result", "data": data}
        if "execution_count" in output.metadata:
            rec["execution_count"] = output.metadata["execution_count"]
    else:
        rec = {"output_type": "display_data", "data": data}
    if "metadata" in output.metadata:
        rec["metadata"] = output.metadata["metadata"]
    return rec


def contains_html(raw_cell: Dict) -> bool:
    """True if any display_data output of the persisted cell carries HTML."""
    for out in raw_cell.get("outputs") or []:
        if out.get("output_type") == "display_data" and (out.get("data") or {}).get(
            HTML_MIME
        ):
            return True
    return False
