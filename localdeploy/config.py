import os
from pathlib import Path
from typing import Any, Mapping, Optional
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from localdeploy.domain.exceptions import ConfigError, ErrorReason

ENV_PREFIX = "LOCALDEPLOY_"

# Environment variable name -> Settings field
ENV_FIELDS = {
    "PATH": "path",
    "REMOTE_URL": "remote_url",
    "REMOTE": "remote",
    "BRANCH": "branch",
    "INTERVAL": "interval_seconds",
    "COMMAND": "command",
    "PRIVATE_KEY": "private_key_path",
    "PUBLIC_KEY": "public_key_path",
    "SSH_USER": "username",
    "USE_PASSPHRASE": "use_passphrase",
    "RUN_ON_START": "run_on_start",
    "LOG_LEVEL": "log_level",
}

DEFAULT_PRIVATE_KEY = "~/.ssh/id_rsa"


class Settings(BaseModel):
    """
    Immutable deployment configuration, produced once at startup.
    """
    model_config = ConfigDict(frozen=True, validate_default=True)

    path: Path = Field(default_factory=Path.cwd, description="Working copy location")
    remote_url: Optional[str] = Field(None, description="Clone source when path holds no repository")
    remote: str = Field("origin", min_length=1)
    branch: str = Field("main", min_length=1)
    interval_seconds: float = Field(3600, gt=0, description="Seconds between the start of two cycles")
    command: str = Field(..., description="Build/run command executed on every change")
    private_key_path: Path = Field(default_factory=lambda: Path(DEFAULT_PRIVATE_KEY))
    public_key_path: Path = Field(
        default_factory=lambda: Path(DEFAULT_PRIVATE_KEY + ".pub"),
        description="Defaults to the private key path plus .pub"
    )
    username: str = Field("git", min_length=1)
    use_passphrase: bool = False
    run_on_start: bool = False
    log_level: str = "INFO"

    @field_validator("path", "private_key_path", "public_key_path")
    @classmethod
    def _expand_user(cls, value: Optional[Path]) -> Optional[Path]:
        return value.expanduser() if value is not None else None

    @field_validator("remote_url")
    @classmethod
    def _blank_url_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            return None
        return value

    @field_validator("command")
    @classmethod
    def _command_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("command must not be blank")
        return value.strip()

    @field_validator("log_level")
    @classmethod
    def _known_log_level(cls, value: str) -> str:
        value = value.upper()
        if value not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level {value!r}")
        return value

    @model_validator(mode="before")
    @classmethod
    def _default_public_key(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("public_key_path"):
            private_key = data.get("private_key_path") or DEFAULT_PRIVATE_KEY
            data = {**data, "public_key_path": f"{private_key}.pub"}
        return data

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Builds settings from LOCALDEPLOY_* environment variables.

        Args:
            environ: Mapping to read from, defaults to os.environ.

        Raises:
            ConfigError: When a value is missing or fails validation.
        """
        environ = os.environ if environ is None else environ
        values = {
            field: environ[ENV_PREFIX + name]
            for name, field in ENV_FIELDS.items()
            if ENV_PREFIX + name in environ
        }

        try:
            return cls(**values)
        except ValidationError as e:
            fields = {str(err["loc"][0]) for err in e.errors() if err["loc"]}
            if "command" in fields:
                raise ConfigError(ErrorReason.MISSING_COMMAND, f"{ENV_PREFIX}COMMAND must be set") from e
            raise ConfigError(ErrorReason.INVALID_SETTING, str(e)) from e
