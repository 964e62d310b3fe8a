"""lance-context - semantic code indexing and hybrid search over LanceDB."""

__version__ = "0.3.0"

from .core.exceptions import LanceContextError

__all__ = ["LanceContextError", "__version__"]
