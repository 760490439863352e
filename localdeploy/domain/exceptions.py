from enum import Enum


class ErrorReason(str, Enum):
    MISSING_REPO_SOURCE = "MissingRepoSource"
    MISSING_COMMAND = "MissingCommand"
    INVALID_SETTING = "InvalidSetting"
    KEY_NOT_FOUND = "KeyNotFound"
    AUTH_REJECTED = "AuthRejected"
    AUTH_REQUIRED = "AuthRequired"
    NETWORK = "Network"
    CORRUPT_REPOSITORY = "CorruptRepository"
    INVALID_BRANCH = "InvalidBranch"
    INVALID_REMOTE = "InvalidRemote"
    COMMAND_NOT_FOUND = "CommandNotFound"


class LocalDeployException(Exception):
    """Base exception for all localdeploy errors."""
    def __init__(self, reason: ErrorReason, message: str):
        self.reason = reason
        super().__init__(f"{reason.value}: {message}")

class ConfigError(LocalDeployException):
    """Raised when the configuration cannot produce a runnable deployment."""
    pass

class CredentialError(LocalDeployException):
    """Raised when SSH key material is missing or rejected by the remote."""
    pass

class TransportError(LocalDeployException):
    """Raised when talking to the remote fails (network, protocol, unsupported transport)."""
    pass

class RepoError(LocalDeployException):
    """Raised for repository corruption or an unknown remote/branch."""
    pass

class SpawnError(LocalDeployException):
    """Raised when the build/run command cannot be started at all."""
    pass
