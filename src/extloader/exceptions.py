"""Custom exceptions for extloader."""

from typing import Optional


class ExtensionError(Exception):
    """Base exception for all extension discovery and loading errors."""

    pass


class ExtensionNotFoundError(ExtensionError):
    """Raised when loading a selector that was not discovered."""

    def __init__(self, extension_name: str):
        self.extension_name = extension_name
        super().__init__(f"Extension for {extension_name} does not exist.")


class InvalidCandidateError(ExtensionError):
    """Raised when a type can not be used as an extension."""

    def __init__(self, message: str, type_name: Optional[str] = None):
        self.type_name = type_name
        super().__init__(message)


class DirectoryMissingError(ExtensionError):
    """Raised when the extensions root is not an existing directory."""

    def __init__(self, directory: str):
        self.directory = directory
        super().__init__(f"Directory {directory} does not exist")
