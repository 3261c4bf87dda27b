"""PFS is a single-file archive format with per-entry zlib compression, and a command-line tool
for listing, extracting, inserting and removing its entries."""

try:
    from ._version import version as __version__
except ImportError:
    __version__ = "0.0.0.dev0"

# Core classes
from .core.archive import PfsArchive

# Data types
from .core.types import (
    MAX_ENTRY_SIZE,
    METHOD_STORED,
    METHOD_ZLIB,
    PfsEntryInfo,
)

# Exceptions
from .exceptions import (
    AlreadyExistsPfsError,
    CompressionPfsError,
    CorruptedPfsError,
    FileErrorPfsError,
    NotFoundPfsError,
    OutOfMemoryPfsError,
    PfsError,
    ReadOnlyPfsError,
    UnknownOptionPfsError,
)

# CLI utilities (for programmatic use)
from .cli.options import Option, OptionArg, ParsedArgs, parse
from .cli.main import main

# Formatting helpers
from .util.misc import filename_from_path, format_size_human

__all__ = [
    # Version
    "__version__",
    # Core classes
    "PfsArchive",
    # Data types
    "MAX_ENTRY_SIZE",
    "METHOD_STORED",
    "METHOD_ZLIB",
    "PfsEntryInfo",
    # Exceptions
    "AlreadyExistsPfsError",
    "CompressionPfsError",
    "CorruptedPfsError",
    "FileErrorPfsError",
    "NotFoundPfsError",
    "OutOfMemoryPfsError",
    "PfsError",
    "ReadOnlyPfsError",
    "UnknownOptionPfsError",
    # CLI utilities
    "Option",
    "OptionArg",
    "ParsedArgs",
    "parse",
    "main",
    # Formatting helpers
    "filename_from_path",
    "format_size_human",
]
