from __future__ import annotations


class NotebookError(Exception):
    """Base class for errors raised by nbprovider."""


class NotebookLoadError(NotebookError):
    """The document could not be turned into a notebook model."""


class CellIndexError(NotebookError, IndexError):
    """A cell index does not address a cell of the document."""

    def __init__(self, index: int, size: int):
        super().__init__(f"Cell index {index} out of range for {size} cells")
        self.index = index
        self.size = size


class OutputDecodeError(NotebookError, ValueError):
    """A persisted output carries an output_type we cannot decode."""


class ConfigError(NotebookError, ValueError):
    pass
