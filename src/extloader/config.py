"""
extloader Configuration.

Centralized configuration management using Pydantic Settings.
Loads configuration from environment variables prefixed with ``EXTLOADER_``.
"""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from extloader.parser import ParserConfig


class Settings(BaseSettings):
    """Loader settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="EXTLOADER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Discovery
    extensions_dir: str = "extensions"  # Root holding one directory per extension
    strict_mode: bool = False  # Require <Name>/<Name>.py naming convention
    source_suffix: str = ".py"
    dynamic_load: bool = True  # Execute candidates that are not registered yet

    # Logging
    log_level: str = "INFO"
    log_format: str = "standard"  # standard or json
    log_console_enabled: bool = True

    @property
    def extensions_path(self) -> Path:
        """Get the extensions root as an expanded path."""
        return Path(self.extensions_dir).expanduser()

    @property
    def parser_config(self) -> ParserConfig:
        """Build the parser configuration from these settings."""
        return ParserConfig(
            source_suffix=self.source_suffix,
            dynamic_load=self.dynamic_load,
        )


# Global settings instance
settings = Settings()
