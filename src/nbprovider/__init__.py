"""Jupyter notebook provider: .ipynb <-> in-memory notebook model.

Output codec, per-document notebook model with execution ordering, and a
lifecycle controller for open/save/backup/execute.
"""

__all__ = [
    "JupyterNotebook",
    "NotebookProvider",
    "NotebookDocument",
    "ProviderConfig",
    "to_in_memory",
    "to_persisted",
]

__version__ = "0.1.0"

from .config import ProviderConfig  # noqa: E402
from .model import NotebookDocument  # noqa: E402
from .notebook import JupyterNotebook  # noqa: E402
from .outputs import to_in_memory, to_persisted  # noqa: E402
from .provider import NotebookProvider  # noqa: E402
