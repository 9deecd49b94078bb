"""
Pytest configuration and fixtures for extloader tests.

Extension trees are written under tmp_path. The process-wide extension type
registry and dynamically loaded candidate modules are reset after every test.
"""

import sys
import textwrap
from pathlib import Path

import pytest

from extloader.extension import extension_types
from extloader.parser import MODULE_PREFIX


@pytest.fixture(autouse=True)
def isolated_extension_types():
    """Undo type registrations and candidate module loads made by a test."""
    with extension_types.isolated():
        yield extension_types

    for name in [name for name in sys.modules if name.startswith(MODULE_PREFIX)]:
        del sys.modules[name]


@pytest.fixture
def extensions_root(tmp_path) -> Path:
    """Create an empty extensions root directory."""
    root = tmp_path / "extensions"
    root.mkdir()
    return root


@pytest.fixture
def write_source(extensions_root):
    """Write a source file into an extension directory under the root."""

    def _write(directory: str, filename: str, source: str) -> Path:
        target_dir = extensions_root / directory
        target_dir.mkdir(parents=True, exist_ok=True)
        path = target_dir / filename
        path.write_text(textwrap.dedent(source).lstrip())
        return path

    return _write


@pytest.fixture
def make_extension(write_source):
    """Write an extension module declaring one Extension subclass."""

    def _make(
        directory: str,
        class_name: str,
        filename: str | None = None,
        namespace: str | None = "fixtures",
        **defaults: object,
    ) -> Path:
        lines = []
        if namespace:
            lines.append(f'__namespace__ = "{namespace}"')
            lines.append("")
        lines.append("from extloader import Extension")
        lines.append("")
        lines.append("")
        lines.append(f"class {class_name}(Extension):")
        if defaults:
            for key, value in defaults.items():
                lines.append(f"    {key} = {value!r}")
        else:
            lines.append("    pass")

        return write_source(
            directory, filename or f"{class_name}.py", "\n".join(lines) + "\n"
        )

    return _make
