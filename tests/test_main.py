import os
import signal
import tempfile
import time
import unittest
from unittest.mock import patch

from localdeploy import main as entrypoint


class _FakeSyncLoop:
    instances = []

    def __init__(self, **kwargs) -> None:
        self.kwargs = kwargs
        self.ran = False
        self.stopped = False
        _FakeSyncLoop.instances.append(self)

    def stop(self) -> None:
        self.stopped = True

    async def run(self) -> None:
        self.ran = True


class TestMain(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        dotenv_patch = patch("localdeploy.main.load_dotenv")
        dotenv_patch.start()
        self.addCleanup(dotenv_patch.stop)
        _FakeSyncLoop.instances = []

    async def test_missing_command_is_fatal(self) -> None:
        with patch.dict(os.environ, {"LOCALDEPLOY_PATH": self._tmp.name}, clear=True):
            exit_code = await entrypoint.main()

        self.assertEqual(exit_code, entrypoint.EXIT_FATAL)

    async def test_missing_repository_source_is_fatal(self) -> None:
        env = {"LOCALDEPLOY_PATH": self._tmp.name, "LOCALDEPLOY_COMMAND": "make deploy"}

        with patch.dict(os.environ, env, clear=True), \
                patch("localdeploy.main.SyncLoop", _FakeSyncLoop):
            exit_code = await entrypoint.main()

        self.assertEqual(exit_code, entrypoint.EXIT_FATAL)
        self.assertFalse(_FakeSyncLoop.instances[0].ran)

    async def test_clean_shutdown_exits_zero(self) -> None:
        env = {
            "LOCALDEPLOY_PATH": self._tmp.name,
            "LOCALDEPLOY_COMMAND": "make deploy",
            "LOCALDEPLOY_INTERVAL": "30",
        }

        with patch.dict(os.environ, env, clear=True), \
                patch("localdeploy.main.RepositoryHandle.open_or_clone") as open_or_clone, \
                patch("localdeploy.main.SyncLoop", _FakeSyncLoop):
            exit_code = await entrypoint.main()

        self.assertEqual(exit_code, entrypoint.EXIT_OK)
        open_or_clone.assert_called_once()
        self.assertTrue(_FakeSyncLoop.instances[0].ran)
        self.assertEqual(_FakeSyncLoop.instances[0].kwargs["command"], "make deploy")
        self.assertEqual(_FakeSyncLoop.instances[0].kwargs["interval_seconds"], 30)

    async def test_signal_during_clone_requests_stop(self) -> None:
        env = {"LOCALDEPLOY_PATH": self._tmp.name, "LOCALDEPLOY_COMMAND": "make deploy"}

        def terminate_while_cloning() -> None:
            os.kill(os.getpid(), signal.SIGTERM)
            # Give the event loop time to dispatch the handler
            time.sleep(0.2)

        with patch.dict(os.environ, env, clear=True), \
                patch("localdeploy.main.RepositoryHandle.open_or_clone", side_effect=terminate_while_cloning), \
                patch("localdeploy.main.SyncLoop", _FakeSyncLoop):
            exit_code = await entrypoint.main()

        self.assertEqual(exit_code, entrypoint.EXIT_OK)
        self.assertTrue(_FakeSyncLoop.instances[0].stopped)
