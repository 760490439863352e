from enum import Enum
from pathlib import Path
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, SecretStr


class Credentials(BaseModel):
    """
    SSH key material resolved once per process and reused for every
    authentication attempt.
    """
    model_config = ConfigDict(frozen=True)

    public_key: Path = Field(..., description="Path to the public key file")
    private_key: Path = Field(..., description="Path to the private key file")
    username: str = Field("git", description="Fallback SSH username")
    passphrase: SecretStr = Field(
        default=SecretStr(""),
        description="Private key passphrase, empty when the key is unprotected"
    )


class SyncResult(BaseModel):
    """Outcome of a single fetch-and-fast-forward cycle."""
    model_config = ConfigDict(frozen=True)

    previous_tip: Optional[str] = Field(None, description="Local branch tip before the sync")
    new_tip: Optional[str] = Field(None, description="Local branch tip after the sync")

    @property
    def changed(self) -> bool:
        return self.previous_tip != self.new_tip


class CommandOutcome(BaseModel):
    """Exit status and duration of the most recent command invocation."""
    model_config = ConfigDict(frozen=True)

    command: str
    returncode: int = Field(..., description="Exit code; negative values carry the terminating signal")
    elapsed: float = Field(..., ge=0, description="Wall-clock seconds the command ran for")

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0

    @property
    def signal(self) -> Optional[int]:
        return -self.returncode if self.returncode < 0 else None


class LoopState(str, Enum):
    IDLE = "Idle"
    SYNCING = "Syncing"
    DECIDING = "Deciding"
    RUNNING = "Running"
    STOPPED = "Stopped"
    ABORTED = "Aborted"
