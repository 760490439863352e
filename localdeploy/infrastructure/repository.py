import logging
from pathlib import Path
from typing import Optional

import pygit2
from pygit2.enums import ResetMode

from localdeploy.config import Settings
from localdeploy.domain.exceptions import ConfigError, ErrorReason, RepoError, TransportError
from localdeploy.domain.models import SyncResult
from localdeploy.infrastructure.acl import GIT_ERRORS, GitErrorTranslator
from localdeploy.infrastructure.credentials import CredentialProvider

logger = logging.getLogger(__name__)

# Transports that would need username/password auth, which is not supported
UNSUPPORTED_URL_PREFIXES = ("http://", "https://")


class RepositoryHandle:
    """
    Wraps the on-disk working copy and the tracked (remote, branch) pair.

    Local state always follows the remote: a sync points the local branch at
    the fetched remote tip and hard-resets the working tree onto it.
    """

    def __init__(
            self,
            path: Path,
            credentials: CredentialProvider,
            remote: str = "origin",
            branch: str = "main",
            remote_url: Optional[str] = None
    ):
        self.path = Path(path)
        self.credentials = credentials
        self.remote_name = remote
        self.branch = branch
        self.remote_url = remote_url
        self.repo: Optional[pygit2.Repository] = None
        self.tip: Optional[str] = None

    @classmethod
    def from_settings(cls, settings: Settings, credentials: CredentialProvider) -> "RepositoryHandle":
        return cls(
            path=settings.path,
            credentials=credentials,
            remote=settings.remote,
            branch=settings.branch,
            remote_url=settings.remote_url,
        )

    @property
    def local_ref(self) -> str:
        return f"refs/heads/{self.branch}"

    @property
    def remote_ref(self) -> str:
        return f"refs/remotes/{self.remote_name}/{self.branch}"

    def open_or_clone(self) -> "RepositoryHandle":
        """
        Opens the repository at the configured path, cloning it first if needed.

        Raises:
            ConfigError: No repository at the path and no remote URL to clone from.
            TransportError: The remote URL uses an unsupported transport or the clone failed.
            CredentialError: The SSH key is missing or was rejected during the clone.
            RepoError: The repository is corrupt or the remote is unknown.
        """
        if self._looks_like_repository():
            self.repo = self._open()
        else:
            self.repo = self._clone()

        self._lookup_remote()
        self.tip = self._local_tip()
        logger.info(f"Repository ready at {self.path} tracking {self.remote_name}/{self.branch} (tip: {self.tip}).")
        return self

    def sync(self) -> SyncResult:
        """
        Fetches the tracked remote and fast-forwards the local branch to it.

        Returns:
            SyncResult: The local tip before and after the sync.

        Raises:
            TransportError: The fetch failed; local state is untouched.
            CredentialError: The SSH key was missing or rejected during the fetch.
            RepoError: The branch does not exist on the remote or the repository is corrupt.
        """
        repo = self._require_open()
        remote = self._lookup_remote()

        try:
            remote.fetch(callbacks=self.credentials.callbacks())
        except GIT_ERRORS as e:
            raise GitErrorTranslator.to_domain_error(e, f"fetch {self.remote_name}") from e

        try:
            new_tip = GitErrorTranslator.to_tip(repo.references.get(self.remote_ref))
            if new_tip is None:
                raise RepoError(
                    ErrorReason.INVALID_BRANCH,
                    f"branch {self.branch!r} does not exist on remote {self.remote_name!r}"
                )

            previous_tip = self._local_tip()
            if previous_tip != new_tip:
                self._fast_forward(new_tip)
        except GIT_ERRORS as e:
            raise RepoError(ErrorReason.CORRUPT_REPOSITORY, f"updating {self.path} failed: {e}") from e

        self.tip = new_tip
        return SyncResult(previous_tip=previous_tip, new_tip=new_tip)

    def _looks_like_repository(self) -> bool:
        if (self.path / ".git").exists():
            return True
        # Bare repository layout
        return (self.path / "HEAD").is_file() and (self.path / "objects").is_dir()

    def _open(self) -> pygit2.Repository:
        try:
            return pygit2.Repository(str(self.path))
        except GIT_ERRORS as e:
            raise RepoError(ErrorReason.CORRUPT_REPOSITORY, f"cannot open repository at {self.path}: {e}") from e

    def _clone(self) -> pygit2.Repository:
        if not self.remote_url:
            raise ConfigError(
                ErrorReason.MISSING_REPO_SOURCE,
                f"{self.path} does not contain a repository and no remote URL was given"
            )
        if self.remote_url.lower().startswith(UNSUPPORTED_URL_PREFIXES):
            raise TransportError(
                ErrorReason.AUTH_REQUIRED,
                f"cloning over HTTP(S) is not supported, use an SSH URL instead of {self.remote_url}"
            )
        if self.path.is_dir() and any(self.path.iterdir()):
            raise RepoError(
                ErrorReason.CORRUPT_REPOSITORY,
                f"{self.path} is not empty and does not contain a repository"
            )

        logger.info(f"Cloning {self.remote_url} into {self.path}...")

        try:
            self.path.mkdir(parents=True, exist_ok=True)
            return pygit2.clone_repository(
                self.remote_url,
                str(self.path),
                remote=self._create_remote,
                checkout_branch=self.branch,
                callbacks=self.credentials.callbacks(),
            )
        except GIT_ERRORS as e:
            # libgit2 reports a missing checkout branch as "reference 'refs/remotes/<remote>/<branch>' not found"
            if self.remote_ref in str(e):
                raise RepoError(
                    ErrorReason.INVALID_BRANCH,
                    f"branch {self.branch!r} does not exist on {self.remote_url}"
                ) from e
            raise GitErrorTranslator.to_domain_error(e, f"clone {self.remote_url}") from e

    def _create_remote(self, repo: pygit2.Repository, name: str, url: str) -> pygit2.Remote:
        return repo.remotes.create(self.remote_name, url)

    def _lookup_remote(self) -> pygit2.Remote:
        repo = self._require_open()
        try:
            return repo.remotes[self.remote_name]
        except GIT_ERRORS as e:
            raise RepoError(ErrorReason.INVALID_REMOTE, f"remote {self.remote_name!r} is not configured in {self.path}") from e

    def _local_tip(self) -> Optional[str]:
        return GitErrorTranslator.to_tip(self._require_open().references.get(self.local_ref))

    def _fast_forward(self, new_tip: str) -> None:
        repo = self._require_open()
        oid = pygit2.Oid(hex=new_tip)

        repo.references.create(self.local_ref, oid, force=True)
        repo.set_head(self.local_ref)
        repo.reset(oid, ResetMode.HARD)

    def _require_open(self) -> pygit2.Repository:
        if self.repo is None:
            raise RepoError(ErrorReason.CORRUPT_REPOSITORY, "repository has not been opened yet")
        return self.repo
