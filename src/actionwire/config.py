"""Configuration management for actionwire."""

from __future__ import annotations

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from actionwire.errors import ConfigurationError

DEFAULT_EXEMPT_PATTERNS = ("PROJECT/*.md", "src/assets.json")
DEFAULT_FORBIDDEN_COMMANDS = ("rm -rf", "*", "npm run", "yarn run", "pnpm run", "bun run")


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="ACTIONWIRE_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Markup
    tag_name: str = Field(default="tag", description="Element name of the action markup")
    fence_passthrough: bool = Field(default=True, description="Ignore action markup inside markdown fences")

    # Validation
    work_dir: str = Field(default="/home/project", description="Remote working directory paths are relative to")
    exempt_patterns: list[str] = Field(
        default_factory=lambda: list(DEFAULT_EXEMPT_PATTERNS),
        description="Glob patterns exempt from the read-before-write rule",
    )
    forbidden_commands: list[str] = Field(
        default_factory=lambda: list(DEFAULT_FORBIDDEN_COMMANDS),
        description="Substrings or prefixes a shell action may not contain",
    )

    # Shell
    sentinel_opcode: str = Field(default="654", description="OSC opcode carrying completion sentinels")
    shell_executable: str = Field(default="bash", description="Shell used by the local channel")
    command_timeout_seconds: float | None = Field(default=None, description="Per-command completion timeout")

    # Logging
    log_level: str = Field(default="INFO", description="Log level")

    @field_validator("tag_name")
    @classmethod
    def _check_tag_name(cls, value: str) -> str:
        if not value or not value.replace("-", "").replace("_", "").isalnum():
            raise ValueError(f"invalid tag name: {value!r}")
        return value

    @field_validator("sentinel_opcode")
    @classmethod
    def _check_opcode(cls, value: str) -> str:
        if not value.isdigit():
            raise ValueError(f"sentinel opcode must be numeric: {value!r}")
        return value


def get_settings(**overrides: object) -> Settings:
    """Get application settings.

    Args:
        **overrides: Field values taking precedence over the environment

    Returns:
        Settings instance
    """
    try:
        return Settings(**overrides)  # type: ignore[arg-type]
    except ValidationError as exc:
        raise ConfigurationError(str(exc)) from exc
