import getpass
import logging
import os
from pathlib import Path
from typing import Callable, Optional

import pygit2
from pygit2.enums import CredentialType
from pydantic import SecretStr

from localdeploy.config import Settings
from localdeploy.domain.exceptions import CredentialError, ErrorReason, TransportError
from localdeploy.domain.models import Credentials

logger = logging.getLogger(__name__)


class CredentialProvider:
    """
    Resolves SSH key material into authentication callbacks for pygit2.

    Key files are checked and the passphrase (if any) is read on the first
    authentication attempt only. The result is cached for the lifetime of the
    provider, so the operator is prompted at most once per run.
    """

    def __init__(
            self,
            public_key: Path,
            private_key: Path,
            username: str = "git",
            use_passphrase: bool = False,
            prompt: Callable[[str], str] = getpass.getpass
    ):
        self.public_key = Path(public_key)
        self.private_key = Path(private_key)
        self.username = username
        self.use_passphrase = use_passphrase
        self._prompt = prompt
        self._credentials: Optional[Credentials] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "CredentialProvider":
        return cls(
            public_key=settings.public_key_path,
            private_key=settings.private_key_path,
            username=settings.username,
            use_passphrase=settings.use_passphrase,
        )

    def resolve(self) -> Credentials:
        """
        Returns the cached credentials, building them on first use.

        Raises:
            CredentialError: If either key file is missing or unreadable.
        """
        if self._credentials is not None:
            return self._credentials

        for key_path in (self.public_key, self.private_key):
            if not key_path.is_file() or not os.access(key_path, os.R_OK):
                raise CredentialError(ErrorReason.KEY_NOT_FOUND, f"SSH key {key_path} does not exist or is not readable")

        passphrase = ""
        if self.use_passphrase:
            passphrase = self._prompt(f"SSH passphrase for {self.private_key}: ")

        self._credentials = Credentials(
            public_key=self.public_key,
            private_key=self.private_key,
            username=self.username,
            passphrase=SecretStr(passphrase),
        )
        logger.info(f"Resolved SSH key {self.private_key} (passphrase: {'yes' if self.use_passphrase else 'no'}).")
        return self._credentials

    def callbacks(self) -> pygit2.RemoteCallbacks:
        """Creates fresh callbacks for a single fetch or clone operation."""
        return KeypairCallbacks(self)


class KeypairCallbacks(pygit2.RemoteCallbacks):
    """
    Remote callbacks offering the provider's key pair exactly once per operation.

    libgit2 asks again after the remote rejects a key; answering the same key
    would loop forever, so the second request is reported as AuthRejected.
    """

    def __init__(self, provider: CredentialProvider):
        super().__init__()
        self.provider = provider
        self.attempts = 0

    def credentials(self, url, username_from_url, allowed_types):
        username = username_from_url or self.provider.username

        if allowed_types & CredentialType.SSH_KEY:
            self.attempts += 1
            if self.attempts > 1:
                raise CredentialError(ErrorReason.AUTH_REJECTED, f"{url} rejected SSH key {self.provider.private_key}")

            creds = self.provider.resolve()
            return pygit2.Keypair(
                username,
                str(creds.public_key),
                str(creds.private_key),
                creds.passphrase.get_secret_value(),
            )

        if allowed_types & CredentialType.USERNAME:
            return pygit2.Username(username)

        raise TransportError(ErrorReason.AUTH_REQUIRED, f"{url} does not accept SSH key authentication")
