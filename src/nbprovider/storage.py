from __future__ import annotations

import asyncio
from pathlib import Path
from urllib.parse import urlparse
from urllib.request import url2pathname


def uri_to_path(uri: str) -> Path:
    """Map a file:// URI or a plain path string to a Path."""
    parsed = urlparse(uri)
    if parsed.scheme == "file":
        return Path(url2pathname(parsed.path))
    return Path(uri)


def path_to_uri(path) -> str:
    return Path(path).resolve().as_uri()


def _read(uri: str) -> bytes:
    with open(uri_to_path(uri), "rb") as f:
        return f.read()


def _write(uri: str, content: bytes) -> None:
    p = uri_to_path(uri)
    p.parent.mkdir(parents=True, exist_ok=True)
    with open(p, "wb") as f:
        f.write(content)


def _delete(uri: str) -> None:
    uri_to_path(uri).unlink(missing_ok=True)


async def read_file(uri: str) -> bytes:
    return await asyncio.to_thread(_read, uri)


async def write_file(uri: str, content: bytes) -> None:
    await asyncio.to_thread(_write, uri, content)


async def delete_file(uri: str) -> None:
    await asyncio.to_thread(_delete, uri)
