"""Script review engine package."""

from .config import ChunkingConfig, IngestionConfig, RetrievalConfig, ReviewConfig
from .errors import ErrorKind, ReviewError

__all__ = [
    "ChunkingConfig",
    "ErrorKind",
    "IngestionConfig",
    "RetrievalConfig",
    "ReviewConfig",
    "ReviewError",
]
