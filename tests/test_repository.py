import tempfile
import unittest
from pathlib import Path

import pygit2

from localdeploy.domain.exceptions import ConfigError, ErrorReason, RepoError, TransportError
from localdeploy.infrastructure.credentials import CredentialProvider
from localdeploy.infrastructure.repository import RepositoryHandle


def _commit(repo: pygit2.Repository, filename: str, content: str, message: str) -> str:
    (Path(repo.workdir) / filename).write_text(content)
    repo.index.add(filename)
    repo.index.write()
    tree = repo.index.write_tree()
    signature = pygit2.Signature("Tester", "tester@example.com")
    parents = [] if repo.head_is_unborn else [repo.head.target]
    return str(repo.create_commit("HEAD", signature, signature, message, tree, parents))


class TestRepositoryHandle(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        root = Path(self._tmp.name)

        self.upstream_path = root / "upstream"
        self.upstream = pygit2.init_repository(str(self.upstream_path), initial_head="main")
        self.first_tip = _commit(self.upstream, "app.txt", "v1\n", "initial")

        self.clone_path = root / "deploy" / "app"
        # Local-path remotes never ask for credentials
        self.credentials = CredentialProvider(public_key=root / "missing.pub", private_key=root / "missing")

    def _handle(self, **kwargs) -> RepositoryHandle:
        options = {"remote_url": str(self.upstream_path)}
        options.update(kwargs)
        return RepositoryHandle(path=self.clone_path, credentials=self.credentials, **options)

    def test_clone_records_baseline_tip(self) -> None:
        handle = self._handle().open_or_clone()

        self.assertEqual(handle.tip, self.first_tip)
        self.assertEqual((self.clone_path / "app.txt").read_text(), "v1\n")

    def test_open_existing_ignores_remote_url(self) -> None:
        self._handle().open_or_clone()

        handle = self._handle(remote_url=None).open_or_clone()

        self.assertEqual(handle.tip, self.first_tip)

    def test_missing_repository_and_url(self) -> None:
        with self.assertRaises(ConfigError) as ctx:
            self._handle(remote_url=None).open_or_clone()

        self.assertEqual(ctx.exception.reason, ErrorReason.MISSING_REPO_SOURCE)

    def test_https_clone_is_refused(self) -> None:
        with self.assertRaises(TransportError) as ctx:
            self._handle(remote_url="https://example.com/team/app.git").open_or_clone()

        self.assertEqual(ctx.exception.reason, ErrorReason.AUTH_REQUIRED)
        self.assertFalse(self.clone_path.exists())

    def test_clone_into_non_empty_directory(self) -> None:
        self.clone_path.mkdir(parents=True)
        (self.clone_path / "stray.txt").write_text("not a repo")

        with self.assertRaises(RepoError):
            self._handle().open_or_clone()

    def test_corrupt_repository(self) -> None:
        self.clone_path.mkdir(parents=True)
        (self.clone_path / ".git").write_text("garbage")

        with self.assertRaises(RepoError) as ctx:
            self._handle().open_or_clone()

        self.assertEqual(ctx.exception.reason, ErrorReason.CORRUPT_REPOSITORY)

    def test_unknown_remote(self) -> None:
        self._handle().open_or_clone()

        with self.assertRaises(RepoError) as ctx:
            self._handle(remote="upstream").open_or_clone()

        self.assertEqual(ctx.exception.reason, ErrorReason.INVALID_REMOTE)

    def test_clone_with_custom_remote_name(self) -> None:
        handle = self._handle(remote="upstream").open_or_clone()

        self.assertIn("upstream", [remote.name for remote in handle.repo.remotes])
        self.assertFalse(handle.sync().changed)

    def test_sync_without_remote_change_is_noop(self) -> None:
        handle = self._handle().open_or_clone()

        first = handle.sync()
        second = handle.sync()

        self.assertFalse(first.changed)
        self.assertFalse(second.changed)
        self.assertEqual(handle.tip, self.first_tip)

    def test_sync_fast_forwards_to_remote_tip(self) -> None:
        handle = self._handle().open_or_clone()
        _commit(self.upstream, "app.txt", "v2\n", "second")
        new_tip = _commit(self.upstream, "extra.txt", "more\n", "third")

        result = handle.sync()

        self.assertTrue(result.changed)
        self.assertEqual(result.previous_tip, self.first_tip)
        self.assertEqual(result.new_tip, new_tip)
        self.assertEqual(handle.tip, new_tip)
        self.assertEqual(str(handle.repo.head.target), new_tip)
        self.assertEqual((self.clone_path / "app.txt").read_text(), "v2\n")
        self.assertTrue((self.clone_path / "extra.txt").exists())
        self.assertFalse(handle.sync().changed)

    def test_sync_discards_local_edits(self) -> None:
        handle = self._handle().open_or_clone()
        (self.clone_path / "app.txt").write_text("local hack\n")
        _commit(self.upstream, "other.txt", "x\n", "second")

        handle.sync()

        self.assertEqual((self.clone_path / "app.txt").read_text(), "v1\n")

    def test_sync_unknown_branch(self) -> None:
        self._handle().open_or_clone()
        handle = self._handle(branch="does-not-exist").open_or_clone()

        with self.assertRaises(RepoError) as ctx:
            handle.sync()

        self.assertEqual(ctx.exception.reason, ErrorReason.INVALID_BRANCH)

    def test_clone_unknown_branch(self) -> None:
        with self.assertRaises(RepoError) as ctx:
            self._handle(branch="does-not-exist").open_or_clone()

        self.assertEqual(ctx.exception.reason, ErrorReason.INVALID_BRANCH)

    def test_unreachable_remote_keeps_tip(self) -> None:
        handle = self._handle().open_or_clone()
        handle.repo.remotes.set_url("origin", str(Path(self._tmp.name) / "gone"))

        with self.assertRaises(TransportError):
            handle.sync()

        self.assertEqual(handle.tip, self.first_tip)
        self.assertEqual(str(handle.repo.head.target), self.first_tip)
