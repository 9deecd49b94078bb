"""
Extension discovery and loading.

The loader scans an extensions root where every immediate subdirectory may
hold one extension. Discovery only records descriptors; an extension is
instantiated the first time it is loaded, and the instance is cached from then
on. Selectors are the directory base names and are case-insensitive.
"""

import logging
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from extloader.descriptor import ExtensionDescriptor
from extloader.exceptions import DirectoryMissingError, ExtensionNotFoundError
from extloader.extension import Extension, extension_types
from extloader.parser import DirectoryParser, ExtensionParser, ParserConfig

if TYPE_CHECKING:
    from extloader.config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Discovered:
    """Registry slot of an extension that has not been activated yet."""

    descriptor: ExtensionDescriptor


@dataclass(frozen=True)
class Activated:
    """Registry slot holding the extension instance."""

    instance: Extension

    @property
    def descriptor(self) -> ExtensionDescriptor:
        return self.instance.descriptor


class LoaderSnapshot(BaseModel):
    """
    Persisted loader state.

    The discovery stack is not part of the snapshot; restoring runs discovery
    again and reloads every selector listed in ``loaded``.
    """

    extensions_dir: str = Field(..., description="Absolute extensions root")
    strict: bool = Field(False, description="Strict discovery mode")
    parser: ParserConfig = Field(default_factory=ParserConfig)
    loaded: List[str] = Field(
        default_factory=list,
        description="Lower-cased selectors that were loaded, in load order",
    )


class ExtensionLoader:
    """
    Discovers extensions in a directory and activates them on demand.

    Example:
        >>> loader = ExtensionLoader("extensions")
        >>> loader.get_all_available_extensions()
        ['Blog', 'Forum']
        >>> blog = loader.load("blog")
        >>> blog is loader.load("BLOG")
        True
    """

    def __init__(
        self,
        extensions_dir: Union[str, Path],
        strict: bool = False,
        parser: Optional[DirectoryParser] = None,
    ) -> None:
        """
        Initialize the loader.

        Args:
            extensions_dir: Root directory holding one directory per extension
            strict: Require the ``<Name>/<Name>.py`` naming convention
            parser: Directory parser, defaults to ExtensionParser

        Raises:
            DirectoryMissingError: If extensions_dir is not a directory
        """
        path = Path(extensions_dir)
        if not path.is_dir():
            raise DirectoryMissingError(str(extensions_dir))

        self._extensions_dir = path.resolve()
        self._strict = strict
        self._parser: DirectoryParser = parser or ExtensionParser()
        self._lock = threading.RLock()
        self._reset()

    def _reset(self) -> None:
        self._started = False

        # Registry slots, index is the offset assigned at discovery
        self._slots: List[Union[Discovered, Activated]] = []

        # Original-case selectors by offset
        self._selectors: List[str] = []

        # Lower-cased selector -> offset
        self._selector_index: Dict[str, int] = {}

        # Lower-cased selector -> original-case selector, in load order
        self._loaded: Dict[str, str] = {}

        # Directory base name -> rejected duplicate type names
        self._duplications: Dict[str, List[str]] = {}

    @classmethod
    def from_settings(cls, settings: Optional["Settings"] = None) -> "ExtensionLoader":
        """Build a loader from Settings (defaults to the global settings)."""
        if settings is None:
            from extloader.config import settings

        return cls(
            settings.extensions_path,
            strict=settings.strict_mode,
            parser=ExtensionParser(settings.parser_config),
        )

    @property
    def extensions_dir(self) -> Path:
        return self._extensions_dir

    @property
    def strict(self) -> bool:
        return self._strict

    @property
    def parser(self) -> DirectoryParser:
        return self._parser

    @property
    def started(self) -> bool:
        return self._started

    @property
    def extension_count(self) -> int:
        """Get count of discovered extensions (runs discovery if needed)."""
        return len(self.start()._selectors)

    def start(self) -> "ExtensionLoader":
        """
        Discover extensions in the extensions root.

        Runs once; later calls return immediately. Subdirectories whose
        lower-cased name was already registered are skipped.

        Returns:
            The loader itself
        """
        with self._lock:
            if self._started:
                return self

            accepted: List[str] = []
            for entry in self._iter_directories():
                name = entry.name
                lower_name = name.lower()
                if lower_name in self._selector_index:
                    logger.debug(f"Skipping {entry.path}: selector {name} already taken")
                    continue

                descriptor = self._parser.parse(
                    entry.path,
                    self._strict,
                    list(accepted),
                    self._duplications,
                )
                if descriptor is None:
                    logger.debug(f"No extension found in {entry.path}")
                    continue

                accepted.append(descriptor.qualified_type_name)
                self._selector_index[lower_name] = len(self._slots)
                self._selectors.append(name)
                self._slots.append(Discovered(descriptor))
                logger.debug(
                    f"Discovered extension {name}: {descriptor.qualified_type_name}"
                )

            self._started = True
            logger.info(
                f"Discovered {len(self._selectors)} extension(s) in {self._extensions_dir}"
            )
            return self

    def _iter_directories(self) -> List[os.DirEntry]:
        with os.scandir(self._extensions_dir) as entries:
            return sorted(
                (entry for entry in entries if entry.is_dir()),
                key=lambda entry: entry.name,
            )

    def exists(self, selector: str) -> bool:
        """Check whether a selector was discovered (runs discovery if needed)."""
        return selector.lower() in self.start()._selector_index

    def is_loaded(self, selector: str) -> bool:
        """Check whether a selector has been activated. Never runs discovery."""
        if not self._started:
            return False
        return selector.lower() in self._loaded

    def get_all_available_extensions(self) -> List[str]:
        """Get original-case selectors of all discovered extensions."""
        return list(self.start()._selectors)

    def get_duplications(self) -> Dict[str, List[str]]:
        """
        Get duplicate type names rejected during discovery.

        Returns:
            Mapping of directory base name to rejected qualified type names
        """
        return {name: list(types) for name, types in self._duplications.items()}

    def get_descriptor(self, selector: str) -> ExtensionDescriptor:
        """
        Get the descriptor of a discovered extension.

        Raises:
            ExtensionNotFoundError: If the selector is unknown
        """
        return self._slots[self._offset(selector)].descriptor

    def load(self, selector: str) -> Extension:
        """
        Load an extension by selector.

        Args:
            selector: Case-insensitive directory base name

        Returns:
            Extension instance, the same one on every call

        Raises:
            ExtensionNotFoundError: If the selector is unknown
            InvalidCandidateError: If the extension type can no longer be created
        """
        with self._lock:
            offset = self._offset(selector)
            slot = self._slots[offset]
            if isinstance(slot, Activated):
                return slot.instance

            instance = self._instantiate(
                slot.descriptor.qualified_type_name, slot.descriptor
            )
            self._slots[offset] = Activated(instance)
            self._loaded[selector.lower()] = self._selectors[offset]
            logger.info(
                f"Loaded extension: {self._selectors[offset]} "
                f"v{instance.get_version_string() or '?'}"
            )
            return instance

    def _offset(self, selector: str) -> int:
        self.start()
        offset = self._selector_index.get(selector.lower())
        if offset is None:
            raise ExtensionNotFoundError(selector)
        return offset

    def _instantiate(
        self, qualified_type_name: str, descriptor: ExtensionDescriptor
    ) -> Extension:
        return extension_types.create(qualified_type_name, descriptor)

    def to_snapshot(self) -> LoaderSnapshot:
        """Capture the persistable state: root, mode, parser config and loaded set."""
        return LoaderSnapshot(
            extensions_dir=str(self._extensions_dir),
            strict=self._strict,
            parser=getattr(self._parser, "config", None) or ParserConfig(),
            loaded=list(self._loaded.keys()),
        )

    @classmethod
    def from_snapshot(
        cls,
        snapshot: LoaderSnapshot,
        parser: Optional[DirectoryParser] = None,
    ) -> "ExtensionLoader":
        """
        Rebuild a loader from a snapshot.

        Discovery runs again and every previously loaded selector is loaded
        in the recorded order.

        Raises:
            DirectoryMissingError: If the extensions root is gone
            ExtensionNotFoundError: If a loaded selector is no longer discovered
            InvalidCandidateError: If a loaded extension can not be created
        """
        loader = cls(
            snapshot.extensions_dir,
            strict=snapshot.strict,
            parser=parser or ExtensionParser(snapshot.parser),
        )
        loader._restore_loaded(snapshot.loaded)
        return loader

    def _restore_loaded(self, loaded: List[str]) -> None:
        if not loaded:
            return
        self.start()
        for selector in loaded:
            self.load(selector)

    def __getstate__(self) -> Dict[str, Any]:
        return {
            "extensions_dir": str(self._extensions_dir),
            "strict": self._strict,
            "parser": self._parser,
            "loaded": list(self._loaded.keys()),
        }

    def __setstate__(self, state: Dict[str, Any]) -> None:
        path = Path(state["extensions_dir"])
        if not path.is_dir():
            raise DirectoryMissingError(state["extensions_dir"])

        self._extensions_dir = path
        self._strict = state["strict"]
        self._parser = state["parser"]
        self._lock = threading.RLock()
        self._reset()
        self._restore_loaded(state["loaded"])

    def __repr__(self) -> str:
        return (
            f"<ExtensionLoader {str(self._extensions_dir)!r} strict={self._strict} "
            f"started={self._started}>"
        )
