"""
Extension base type and the process-wide extension type registry.

Every concrete extension derives from ``Extension``. Subclasses register
themselves under their qualified type name when the class statement runs,
which lets the loader construct them by name without reflection.

A module places its extensions in a namespace by declaring
``__namespace__ = "acme.blog"`` as its first statement.
"""

import inspect
import logging
import sys
from abc import ABC
from contextlib import contextmanager
from typing import TYPE_CHECKING, ClassVar, Dict, Iterator, List, Optional, Type

from extloader.exceptions import InvalidCandidateError

if TYPE_CHECKING:
    from extloader.descriptor import ExtensionDescriptor

logger = logging.getLogger(__name__)

NAMESPACE_ATTRIBUTE = "__namespace__"


def qualified_type_name(cls: type) -> str:
    """
    Compute the qualified type name of a class.

    The namespace comes from the ``__namespace__`` global of the module that
    defines the class; classes from modules without one use their bare name.
    """
    module = sys.modules.get(cls.__module__)
    namespace = getattr(module, NAMESPACE_ATTRIBUTE, "") if module else ""
    if not isinstance(namespace, str):
        namespace = ""
    namespace = namespace.strip(".")
    return f"{namespace}.{cls.__name__}" if namespace else cls.__name__


class ExtensionTypeRegistry:
    """
    Mapping of qualified type name to extension class.

    Example:
        >>> registry = ExtensionTypeRegistry()
        >>> registry.register("acme.Blog", Blog)
        >>> blog = registry.create("acme.Blog", descriptor)
    """

    def __init__(self) -> None:
        self._types: Dict[str, Type["Extension"]] = {}

    def register(self, name: str, extension_type: Type["Extension"]) -> None:
        """
        Register an extension class under its qualified name.

        Raises:
            InvalidCandidateError: If another module already declared the name
        """
        existing = self._types.get(name)
        if existing is not None and existing.__module__ != extension_type.__module__:
            raise InvalidCandidateError(
                f"Extension type {name} is already declared in module "
                f"{existing.__module__}",
                type_name=name,
            )
        self._types[name] = extension_type
        logger.debug(f"Registered extension type: {name}")

    def get(self, name: str) -> Optional[Type["Extension"]]:
        return self._types.get(name)

    def discard(self, name: str) -> None:
        self._types.pop(name, None)

    def names(self) -> List[str]:
        return list(self._types.keys())

    def create(self, name: str, descriptor: "ExtensionDescriptor") -> "Extension":
        """
        Construct the extension registered under ``name``.

        Raises:
            InvalidCandidateError: If the name is unknown or not instantiable
        """
        extension_type = self._types.get(name)
        if extension_type is None:
            raise InvalidCandidateError(
                f"Extension type {name} is not registered", type_name=name
            )
        return check_extension_type(extension_type)(descriptor)

    @contextmanager
    def isolated(self) -> Iterator["ExtensionTypeRegistry"]:
        """Restore the registered types on exit."""
        saved = dict(self._types)
        try:
            yield self
        finally:
            self._types = saved

    def __contains__(self, name: object) -> bool:
        return name in self._types

    def __len__(self) -> int:
        return len(self._types)


# Global registry populated by Extension subclasses
extension_types = ExtensionTypeRegistry()


class Extension(ABC):
    """
    Abstract extension template.

    Subclasses may declare ``extension_name``, ``extension_version`` and
    ``extension_description`` (or the shorter ``name``, ``version`` and
    ``description``). Anything left empty is filled from the descriptor the
    loader passes to the constructor.
    """

    extension_name: ClassVar[str] = ""
    extension_version: ClassVar[str] = ""
    extension_description: ClassVar[str] = ""

    __extension_type__: ClassVar[str]

    def __init_subclass__(cls, **kwargs: object) -> None:
        super().__init_subclass__(**kwargs)
        name = qualified_type_name(cls)
        extension_types.register(name, cls)
        cls.__extension_type__ = name

    def __init__(self, descriptor: "ExtensionDescriptor"):
        self.descriptor = descriptor
        self._name = declared_text(self.extension_name) or descriptor.name
        self._version = declared_text(self.extension_version) or descriptor.version
        self._description = (
            declared_text(self.extension_description) or descriptor.description
        )
        self.on_construct(descriptor)

    def on_construct(self, descriptor: "ExtensionDescriptor") -> None:
        """Hook called at the end of construction."""

    def get_name(self) -> str:
        return self._name

    def get_version_string(self) -> str:
        return self._version

    def get_description(self) -> str:
        return self._description

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self._name!r} version={self._version!r}>"


def declared_text(value: object) -> str:
    if isinstance(value, bool):
        return ""
    if isinstance(value, (int, float)):
        return str(value)
    return value if isinstance(value, str) else ""


def is_anonymous(cls: type) -> bool:
    """Check whether a class was created inside a function or without a name."""
    return (
        not cls.__name__.isidentifier()
        or "<locals>" in cls.__qualname__
        or "<lambda>" in cls.__qualname__
    )


def check_extension_type(candidate: object) -> Type[Extension]:
    """
    Validate that a candidate can be instantiated as an extension.

    Args:
        candidate: Object to check, usually a class found in the registry

    Returns:
        The candidate, typed as an Extension subclass

    Raises:
        InvalidCandidateError: If the candidate is not a subclass of Extension,
            is abstract, anonymous, not public or does not take a descriptor
    """
    if not isinstance(candidate, type):
        raise InvalidCandidateError(f"{candidate!r} is not a class")

    name = getattr(candidate, "__extension_type__", candidate.__qualname__)

    if candidate is Extension or not issubclass(candidate, Extension):
        raise InvalidCandidateError(
            f"{candidate.__qualname__} must be a subclass of {Extension.__qualname__}",
            type_name=name,
        )

    if inspect.isabstract(candidate):
        raise InvalidCandidateError(
            f"{name} must be an instantiable class, it has abstract methods",
            type_name=name,
        )

    if is_anonymous(candidate):
        raise InvalidCandidateError(
            f"{name} can not be an anonymous class", type_name=name
        )

    if candidate.__name__.startswith("_"):
        raise InvalidCandidateError(f"{name} must be a public class", type_name=name)

    if not accepts_descriptor(candidate):
        raise InvalidCandidateError(
            f"{name} must be constructible from a single descriptor argument",
            type_name=name,
        )

    return candidate


def accepts_descriptor(cls: type) -> bool:
    """Check whether ``cls(descriptor)`` matches the constructor signature."""
    try:
        signature = inspect.signature(cls)
    except ValueError:
        return True

    try:
        signature.bind(None)
    except TypeError:
        return False
    return True
