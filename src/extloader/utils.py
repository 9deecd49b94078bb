"""
Path and qualified-name helpers shared by the parser and the loader.
"""

import os
import re
from typing import NamedTuple, Optional, Union

IDENTIFIER = r"[A-Za-z_][A-Za-z0-9_]*"

# Dot-separated identifier path, e.g. "acme.blog"
NAMESPACE_PATTERN = re.compile(rf"{IDENTIFIER}(?:\.{IDENTIFIER})*")

QUALIFIED_NAME_PATTERN = re.compile(
    rf"""
    \.?
    (?P<name>
        (?:(?P<namespace>{IDENTIFIER}(?:\.{IDENTIFIER})*)\.)?
        (?P<short_name>{IDENTIFIER})
    )
    """,
    re.VERBOSE,
)


class QualifiedName(NamedTuple):
    """A parsed qualified type name."""

    name: str
    namespace: str
    short_name: str


def normalize_directory_separator(path: str) -> str:
    """Collapse runs of ``/`` and ``\\`` into the platform separator."""
    return re.sub(r"[\\/]+", re.escape(os.sep), path)


def parse_class_name(value: Union[str, type, object]) -> Optional[QualifiedName]:
    """
    Parse a qualified class name into namespace and short name.

    Args:
        value: Class name string, class or instance

    Returns:
        QualifiedName, or None if the value is not a syntactically valid name

    Example:
        >>> parse_class_name("acme.blog.Blog")
        QualifiedName(name='acme.blog.Blog', namespace='acme.blog', short_name='Blog')
    """
    if not isinstance(value, str):
        value = _type_name(value)

    match = QUALIFIED_NAME_PATTERN.fullmatch(value)
    if match is None:
        return None

    return QualifiedName(
        name=match.group("name"),
        namespace=match.group("namespace") or "",
        short_name=match.group("short_name"),
    )


def get_class_short_name(value: Union[str, type, object]) -> str:
    """Return the last segment of a qualified class name."""
    if not isinstance(value, str):
        value = _type_name(value)
    return value.rsplit(".", 1)[-1]


def _type_name(value: Union[type, object]) -> str:
    cls = value if isinstance(value, type) else type(value)
    return f"{cls.__module__}.{cls.__qualname__}"
