"""
extloader - directory based extension discovery and lazy activation.

Each immediate subdirectory of an extensions root may hold one extension
module. The loader identifies the declared extension type of every directory
without executing duplicates, and instantiates an extension the first time it
is requested.
"""

from extloader.descriptor import DescriptorSnapshot, ExtensionDescriptor
from extloader.exceptions import (
    DirectoryMissingError,
    ExtensionError,
    ExtensionNotFoundError,
    InvalidCandidateError,
)
from extloader.extension import (
    Extension,
    ExtensionTypeRegistry,
    check_extension_type,
    extension_types,
)
from extloader.loader import ExtensionLoader, LoaderSnapshot
from extloader.parser import DirectoryParser, ExtensionParser, ParserConfig

__version__ = "0.1.0"

__all__ = [
    "DescriptorSnapshot",
    "DirectoryMissingError",
    "DirectoryParser",
    "Extension",
    "ExtensionDescriptor",
    "ExtensionError",
    "ExtensionLoader",
    "ExtensionNotFoundError",
    "ExtensionParser",
    "ExtensionTypeRegistry",
    "InvalidCandidateError",
    "LoaderSnapshot",
    "ParserConfig",
    "check_extension_type",
    "extension_types",
]
