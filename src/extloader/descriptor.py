"""
Extension descriptor model.

A descriptor is the immutable identity record of a discovered extension. It is
built by introspecting the declared class defaults of an extension type and is
what the loader hands to the extension constructor on activation.
"""

import inspect
import sys
from pathlib import Path
from typing import Any, Dict, Tuple

from pydantic import BaseModel, ConfigDict, Field

from extloader.exceptions import InvalidCandidateError
from extloader.extension import (
    check_extension_type,
    declared_text,
    extension_types,
)

# Field -> declared class attributes, in order of precedence
DECLARED_FIELDS: Dict[str, Tuple[str, str]] = {
    "name": ("extension_name", "name"),
    "version": ("extension_version", "version"),
    "description": ("extension_description", "description"),
}


class DescriptorSnapshot(BaseModel):
    """Persisted form of a descriptor: identity and mode only."""

    qualified_type_name: str = Field(..., min_length=1)
    strict: bool = False


class ExtensionDescriptor(BaseModel):
    """
    Identity and metadata of a discovered extension.

    Descriptors are never restored from cached metadata: restoring a snapshot
    re-reads the live type so the metadata always reflects the loaded code.
    """

    model_config = ConfigDict(frozen=True)

    qualified_type_name: str = Field(
        ...,
        min_length=1,
        description="Qualified type name, unique per extension (e.g. 'acme.blog.Blog')",
    )

    source_location: str = Field(
        "",
        description="Absolute path of the file defining the type",
    )

    name: str = Field(
        ...,
        description="Display name, defaults to the type short name",
    )

    version: str = Field("", description="Declared version string")

    description: str = Field("", description="Declared description")

    strict: bool = Field(
        False,
        description="Whether the descriptor was produced under strict discovery",
    )

    @property
    def is_valid(self) -> bool:
        return bool(self.qualified_type_name)

    @property
    def short_name(self) -> str:
        return self.qualified_type_name.rsplit(".", 1)[-1]

    @property
    def namespace(self) -> str:
        namespace, _, _ = self.qualified_type_name.rpartition(".")
        return namespace

    @classmethod
    def from_type(cls, extension_type: Any, strict: bool = False) -> "ExtensionDescriptor":
        """
        Build a descriptor from an extension class.

        Args:
            extension_type: Concrete Extension subclass
            strict: Whether discovery ran in strict mode

        Returns:
            ExtensionDescriptor instance

        Raises:
            InvalidCandidateError: If the type is abstract, anonymous, not
                public or not an Extension subclass
        """
        extension_type = check_extension_type(extension_type)
        return cls(
            qualified_type_name=extension_type.__extension_type__,
            source_location=_source_location(extension_type),
            strict=strict,
            **read_declared_defaults(extension_type),
        )

    def to_snapshot(self) -> DescriptorSnapshot:
        return DescriptorSnapshot(
            qualified_type_name=self.qualified_type_name, strict=self.strict
        )

    @classmethod
    def from_snapshot(cls, snapshot: DescriptorSnapshot) -> "ExtensionDescriptor":
        """
        Rebuild a descriptor by introspecting the live type again.

        Raises:
            InvalidCandidateError: If the type no longer exists or is invalid
        """
        extension_type = extension_types.get(snapshot.qualified_type_name)
        if extension_type is None:
            raise InvalidCandidateError(
                f"Extension type {snapshot.qualified_type_name} is no longer available",
                type_name=snapshot.qualified_type_name,
            )
        return cls.from_type(extension_type, strict=snapshot.strict)

    def __reduce__(self):
        return (restore_descriptor, (self.qualified_type_name, self.strict))


def restore_descriptor(qualified_type_name: str, strict: bool = False) -> ExtensionDescriptor:
    """Unpickling entry point for descriptors."""
    return ExtensionDescriptor.from_snapshot(
        DescriptorSnapshot(qualified_type_name=qualified_type_name, strict=strict)
    )


def read_declared_defaults(extension_type: type) -> Dict[str, str]:
    """
    Read name, version and description from declared class attributes.

    Only plain class attributes count; properties and other computed
    attributes are ignored. Versions may be declared as numbers.
    """
    values = {"name": extension_type.__name__, "version": "", "description": ""}

    for field, attributes in DECLARED_FIELDS.items():
        for attribute in attributes:
            declared = inspect.getattr_static(extension_type, attribute, None)
            if field != "version" and not isinstance(declared, str):
                continue
            text = declared_text(declared)
            if text:
                values[field] = text
                break

    return values


def _source_location(extension_type: type) -> str:
    module = sys.modules.get(extension_type.__module__)
    path = getattr(module, "__file__", None)
    if not path:
        return ""
    return str(Path(path).resolve())

