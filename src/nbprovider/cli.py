from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from .backend import DelayedExecutionBackend, ImmediateExecutionBackend
from .config import load_config
from .errors import NotebookError
from .model import NotebookDocument
from .outputs import ERROR_MIME, STREAM_MIME
from .provider import NotebookProvider
from .storage import path_to_uri


async def _open(provider: NotebookProvider, path: Path) -> NotebookDocument:
    uri = path_to_uri(path)
    data = await provider.open_notebook(uri)
    return NotebookDocument.from_data(uri, data)


def _describe_output(output) -> str:
    mimes = output.mimes()
    if STREAM_MIME in mimes:
        return "stream"
    if ERROR_MIME in mimes:
        return "error"
    return ",".join(mimes)


async def _cmd_show(provider: NotebookProvider, path: Path, show_outputs: bool) -> int:
    doc = await _open(provider, path)
    for cell in doc.cells:
        first = cell.text.splitlines()[0] if cell.text else ""
        order = cell.metadata.get("execution_order")
        print(f"[{cell.index}] {cell.cell_kind.value:<8} {order if order is not None else '-':>3}  {first}")
        if show_outputs:
            for out in cell.outputs:
                print(f"      -> {_describe_output(out)}")
    return 0


async def _cmd_run(
    provider: NotebookProvider, path: Path, cell: Optional[int], output: Optional[Path]
) -> int:
    if cell is not None:
        # Other cells keep their persisted outputs when the file is saved back
        provider.config.fill_outputs = True
    doc = await _open(provider, path)
    if cell is None:
        await provider.execute_all_cells(doc)
    else:
        await provider.execute_cell(doc, cell)
    target = path_to_uri(output) if output else doc.uri
    await provider.save_notebook_as(target, doc)
    print(f"Executed: {path}")
    return 0


async def _cmd_convert(provider: NotebookProvider, path: Path, output: Path) -> int:
    provider.config.fill_outputs = True
    doc = await _open(provider, path)
    await provider.save_notebook_as(path_to_uri(output), doc)
    print(f"Converted: {path} -> {output}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="nbprov", description="Jupyter notebook provider")
    parser.add_argument("--config", help="YAML config file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_show = sub.add_parser("show", help="Print the cells of a notebook")
    p_show.add_argument("file")
    p_show.add_argument("--outputs", action="store_true", help="List output kinds too")

    p_run = sub.add_parser("run", help="Execute a cell, or all cells, and save")
    p_run.add_argument("file")
    p_run.add_argument("--cell", type=int, help="Index of the cell to run")
    p_run.add_argument("-o", "--output", help="Output .ipynb file (default: in place)")
    p_run.add_argument(
        "--delay",
        type=float,
        help="Max simulated execution delay in seconds (0 disables it)",
    )

    p_convert = sub.add_parser("convert", help="Re-save a notebook in normalised form")
    p_convert.add_argument("file")
    p_convert.add_argument("-o", "--output", required=True, help="Output .ipynb file")

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        config = load_config(args.config)
    except (OSError, NotebookError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    path = Path(args.file)
    backend = None
    if args.cmd == "run" and args.delay is not None:
        backend = (
            DelayedExecutionBackend(args.delay) if args.delay > 0 else ImmediateExecutionBackend()
        )

    async def _main() -> int:
        provider = NotebookProvider(config, backend=backend)
        try:
            if args.cmd == "show":
                return await _cmd_show(provider, path, args.outputs)
            if args.cmd == "run":
                out = Path(args.output) if args.output else None
                return await _cmd_run(provider, path, args.cell, out)
            return await _cmd_convert(provider, path, Path(args.output))
        finally:
            provider.dispose()

    try:
        return asyncio.run(_main())
    except NotebookError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
