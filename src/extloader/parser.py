"""
Extension directory parser.

Identifies the extension type declared inside one extension directory. Source
files are scanned statically first (``ast``) to recover the declared qualified
type name, so candidates whose type is already registered or duplicated never
get executed. Only when the type is unknown is the file executed, inside a
guarded boundary that contains any load-time failure.
"""

import ast
import hashlib
import importlib.machinery
import importlib.util
import logging
import os
import re
import sys
from contextlib import suppress
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol, Set, Type, Union

from pydantic import BaseModel, Field, field_validator

from extloader.descriptor import ExtensionDescriptor
from extloader.exceptions import InvalidCandidateError
from extloader.extension import (
    NAMESPACE_ATTRIBUTE,
    Extension,
    check_extension_type,
    extension_types,
)
from extloader.utils import (
    NAMESPACE_PATTERN,
    normalize_directory_separator,
    parse_class_name,
)

logger = logging.getLogger(__name__)

# Prefix of module names given to executed candidate files
MODULE_PREFIX = "_extloader_ext_"

Duplications = Dict[str, List[str]]


class ParserConfig(BaseModel):
    """Settings that control how candidate files are found and loaded."""

    source_suffix: str = Field(
        ".py",
        description="Suffix of candidate source files",
    )

    dynamic_load: bool = Field(
        True,
        description="Execute candidate files whose type is not registered yet",
    )

    encoding: str = Field(
        "utf-8",
        description="Encoding used to read candidate files",
    )

    @field_validator("source_suffix")
    @classmethod
    def validate_suffix(cls, suffix: str) -> str:
        """Ensure the suffix starts with a dot and is lowercase."""
        if not suffix.startswith("."):
            suffix = f".{suffix}"
        return suffix.lower()


class DirectoryParser(Protocol):
    """
    Protocol for extension directory parsers.

    The loader calls parse() once per extension directory during discovery.
    """

    def parse(
        self,
        directory: Union[str, Path],
        strict: bool = False,
        existing: Iterable[str] = (),
        duplications: Optional[Duplications] = None,
    ) -> Optional[ExtensionDescriptor]:
        """
        Parse one extension directory.

        Args:
            directory: Extension directory to scan
            strict: Whether strict naming rules apply
            existing: Qualified type names already accepted in this pass
            duplications: Accumulator for rejected duplicate type names,
                keyed by directory base name

        Returns:
            ExtensionDescriptor, or None if the directory holds no usable extension
        """
        ...


class ExtensionParser:
    """
    Default directory parser.

    Looks for ``<DirectoryName>.py`` first. Outside strict mode it falls back
    to the first source file in the directory that declares a valid,
    not-yet-accepted extension type.

    Example:
        >>> parser = ExtensionParser()
        >>> descriptor = parser.parse("extensions/blog")
        >>> descriptor.qualified_type_name
        'acme.Blog'
    """

    def __init__(self, config: Optional[ParserConfig] = None) -> None:
        self.config = config or ParserConfig()

        # Files already handed to the guarded loader
        self._attempted: Set[str] = set()

    def parse(
        self,
        directory: Union[str, Path],
        strict: bool = False,
        existing: Iterable[str] = (),
        duplications: Optional[Duplications] = None,
    ) -> Optional[ExtensionDescriptor]:
        if duplications is None:
            duplications = {}

        extension_type = self.scan_directory(directory, strict, existing, duplications)
        if extension_type is None:
            return None

        try:
            return ExtensionDescriptor.from_type(extension_type, strict=strict)
        except InvalidCandidateError as e:
            logger.debug(f"Rejected extension candidate in {directory}: {e}")
            return None

    def scan_directory(
        self,
        directory: Union[str, Path],
        strict: bool,
        existing: Iterable[str],
        duplications: Duplications,
    ) -> Optional[Type[Extension]]:
        """
        Find the extension type declared in a directory.

        Args:
            directory: Extension directory to scan
            strict: Whether strict naming rules apply
            existing: Qualified type names already accepted in this pass
            duplications: Accumulator for rejected duplicates

        Returns:
            Extension class, or None if nothing usable was found
        """
        normalized = normalize_directory_separator(str(directory))
        path = Path(normalized.rstrip(os.sep) or os.sep)
        base_name = path.name
        accepted = set(existing)

        expected = parse_class_name(base_name)
        expected_file: Optional[str] = None

        if expected is not None:
            expected_file = f"{expected.name}{self.config.source_suffix}"
            candidate = path / expected_file
            extension_type = None
            if candidate.is_file() and os.access(candidate, os.R_OK):
                extension_type = self.parse_file(candidate)

            if strict and (
                extension_type is None
                or extension_type.__name__.lower() != expected.short_name.lower()
            ):
                logger.debug(
                    f"Strict mode: {path} has no {expected_file} declaring "
                    f"{expected.short_name}"
                )
                return None

            if extension_type is not None:
                type_name = extension_type.__extension_type__
                if type_name in accepted:
                    duplications.setdefault(base_name, []).append(type_name)
                    logger.warning(
                        f"Skipping duplicate extension type {type_name} in {path}"
                    )
                    return None
                return extension_type

        elif strict:
            logger.debug(f"Strict mode: {base_name} is not a valid type name")
            return None

        for source_file in self._iter_source_files(path, skip=expected_file):
            extension_type = self.parse_file(source_file)
            if extension_type is None:
                continue

            type_name = extension_type.__extension_type__
            if type_name not in accepted:
                return extension_type

            duplications.setdefault(base_name, []).append(type_name)
            logger.warning(
                f"Skipping duplicate extension type {type_name} in {source_file}"
            )

        return None

    def parse_file(self, target: Union[str, Path]) -> Optional[Type[Extension]]:
        """
        Resolve the extension type declared by one source file.

        Args:
            target: Candidate source file

        Returns:
            Extension class, or None if the file declares no valid extension
        """
        target = Path(target)
        if target.suffix.lower() != self.config.source_suffix or not target.is_file():
            return None

        try:
            source = target.read_text(encoding=self.config.encoding)
        except (OSError, UnicodeDecodeError) as e:
            logger.debug(f"Could not read {target}: {e}")
            return None

        type_name = self.read_declaration(source, str(target))
        if type_name is None:
            return None

        # The type may already be registered, e.g. loaded through another path
        extension_type = self._introspect(type_name)
        if extension_type is not None or not self.config.dynamic_load:
            return extension_type

        self._guarded_load(target)
        return self._introspect(type_name)

    def read_declaration(self, source: str, filename: str = "<unknown>") -> Optional[str]:
        """
        Statically extract the qualified type name a source file declares.

        The namespace comes from a leading ``__namespace__ = "..."`` statement,
        the type from the first top-level class with a base class that is not
        a Protocol.

        Returns:
            Qualified type name, or None if the file declares no candidate
        """
        try:
            tree = ast.parse(source, filename=filename)
        except (SyntaxError, ValueError):
            return None
        except (RecursionError, MemoryError) as e:
            logger.debug(f"Could not parse {filename}: {type(e).__name__}")
            return None

        body = _strip_module_preamble(tree.body)
        if not body:
            return None

        namespace = ""
        for index, node in enumerate(body):
            if not _assigns_namespace(node):
                continue
            value = getattr(node, "value", None)
            if (
                index != 0
                or isinstance(node, ast.AugAssign)
                or not isinstance(value, ast.Constant)
                or not isinstance(value.value, str)
                or not NAMESPACE_PATTERN.fullmatch(value.value)
            ):
                logger.debug(f"Malformed {NAMESPACE_ATTRIBUTE} declaration in {filename}")
                return None
            namespace = value.value

        for node in body:
            if not isinstance(node, ast.ClassDef) or not node.bases:
                continue
            if any(_is_protocol(base) for base in node.bases):
                continue
            return f"{namespace}.{node.name}" if namespace else node.name

        return None

    def _introspect(self, type_name: str) -> Optional[Type[Extension]]:
        extension_type = extension_types.get(type_name)
        if extension_type is None:
            return None

        try:
            return check_extension_type(extension_type)
        except InvalidCandidateError as e:
            logger.debug(f"Type {type_name} is not a usable extension: {e}")
            return None

    def _guarded_load(self, target: Path) -> None:
        """
        Execute a candidate file once, containing any failure.

        On failure the module is dropped from sys.modules and every extension
        type it registered is removed from the registry again.
        """
        resolved = str(target.resolve())
        module_name = self._module_name(target)
        if resolved in self._attempted or module_name in sys.modules:
            return
        self._attempted.add(resolved)

        loader = importlib.machinery.SourceFileLoader(module_name, str(target))
        spec = importlib.util.spec_from_file_location(module_name, target, loader=loader)
        if spec is None or spec.loader is None:
            logger.debug(f"Cannot create module spec for {target}")
            return

        module = importlib.util.module_from_spec(spec)
        registered = set(extension_types.names())
        imported = set(sys.modules)
        plugin_dir = str(target.parent)

        sys.modules[module_name] = module
        sys.path.insert(0, plugin_dir)
        try:
            spec.loader.exec_module(module)
            logger.debug(f"Loaded extension candidate {target} as {module_name}")
        except (Exception, SystemExit) as e:
            sys.modules.pop(module_name, None)
            for type_name in set(extension_types.names()) - registered:
                extension_types.discard(type_name)
            logger.warning(f"Failed to load extension candidate {target}: {e}")
        finally:
            with suppress(ValueError):
                sys.path.remove(plugin_dir)
            _evict_directory_modules(
                set(sys.modules) - imported - {module_name}, target.parent
            )

    def _iter_source_files(self, directory: Path, skip: Optional[str] = None) -> List[Path]:
        try:
            with os.scandir(directory) as entries:
                candidates = sorted(entries, key=lambda entry: entry.name)
        except OSError as e:
            logger.debug(f"Could not list {directory}: {e}")
            return []

        files = []
        for entry in candidates:
            if (
                entry.name == skip
                or not entry.is_file()
                or Path(entry.name).suffix.lower() != self.config.source_suffix
                or not os.access(entry.path, os.R_OK)
            ):
                continue
            files.append(Path(entry.path))
        return files

    @staticmethod
    def _module_name(target: Path) -> str:
        digest = hashlib.sha1(str(target.resolve()).encode("utf-8")).hexdigest()[:12]
        stem = re.sub(r"\W", "_", target.stem)
        return f"{MODULE_PREFIX}{digest}_{stem}"

    def __getstate__(self) -> Dict[str, object]:
        return {"config": self.config}

    def __setstate__(self, state: Dict[str, object]) -> None:
        self.__init__(state["config"])  # type: ignore[misc, arg-type]


def _strip_module_preamble(body: List[ast.stmt]) -> List[ast.stmt]:
    """Drop the module docstring and ``from __future__`` imports."""
    body = list(body)
    if (
        body
        and isinstance(body[0], ast.Expr)
        and isinstance(body[0].value, ast.Constant)
        and isinstance(body[0].value.value, str)
    ):
        body = body[1:]
    while (
        body
        and isinstance(body[0], ast.ImportFrom)
        and body[0].module == "__future__"
    ):
        body = body[1:]
    return body


def _evict_directory_modules(names: Set[str], directory: Path) -> None:
    """Drop modules imported from ``directory`` so the next candidate imports its own."""
    root = directory.resolve()
    for name in names:
        path = getattr(sys.modules.get(name), "__file__", None)
        if not path:
            continue
        if Path(path).resolve().is_relative_to(root):
            del sys.modules[name]
            logger.debug(f"Dropped sibling module {name} of {directory}")


def _assigns_namespace(node: ast.stmt) -> bool:
    if isinstance(node, ast.Assign):
        targets = node.targets
    elif isinstance(node, (ast.AnnAssign, ast.AugAssign)):
        targets = [node.target]
    else:
        return False
    return any(
        isinstance(target, ast.Name) and target.id == NAMESPACE_ATTRIBUTE
        for target in targets
    )


def _is_protocol(base: ast.expr) -> bool:
    if isinstance(base, ast.Subscript):
        base = base.value
    if isinstance(base, ast.Name):
        return base.id == "Protocol"
    if isinstance(base, ast.Attribute):
        return base.attr == "Protocol"
    return False
