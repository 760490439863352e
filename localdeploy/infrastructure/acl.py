from typing import Optional

import pygit2

from localdeploy.domain.exceptions import CredentialError, ErrorReason, LocalDeployException, TransportError

# Substrings libgit2 uses when the remote refuses the offered credentials
AUTH_FAILURE_MARKERS = (
    "authenticat",
    "publickey",
    "credentials",
    "permission denied",
)

# pygit2 maps libgit2 error codes onto these (GIT_ENOTFOUND -> KeyError, GIT_EINVALIDSPEC -> ValueError)
GIT_ERRORS = (pygit2.GitError, KeyError, ValueError, OSError)

class GitErrorTranslator:
    """
    Anti-corruption layer that translates libgit2 errors and objects into domain types.
    """

    @staticmethod
    def to_domain_error(error: Exception, operation: str) -> LocalDeployException:
        """
        Classifies a libgit2 failure raised while talking to a remote.

        Args:
            error (Exception): One of GIT_ERRORS raised by pygit2.
            operation (str): Short description of what was attempted, e.g. "fetch origin".

        Returns:
            LocalDeployException: CredentialError for rejected credentials, TransportError otherwise.
        """
        message = str(error) or error.__class__.__name__
        lowered = message.lower()

        if any(marker in lowered for marker in AUTH_FAILURE_MARKERS):
            return CredentialError(ErrorReason.AUTH_REJECTED, f"{operation} failed: {message}")
        return TransportError(ErrorReason.NETWORK, f"{operation} failed: {message}")

    @staticmethod
    def to_tip(reference: Optional[pygit2.Reference]) -> Optional[str]:
        """Returns the hex commit id a reference resolves to, or None for a missing reference."""
        if reference is None:
            return None
        return str(reference.resolve().target)
