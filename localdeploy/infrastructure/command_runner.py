import asyncio
import logging
import shlex
import time
from pathlib import Path

from localdeploy.domain.exceptions import ErrorReason, SpawnError
from localdeploy.domain.models import CommandOutcome

logger = logging.getLogger(__name__)


class CommandRunner:
    """
    Runs the build/run command in the working copy and waits for it to exit.

    The child inherits stdout/stderr so its output reaches the operator as it
    is produced. No timeout is applied.
    """

    async def run(self, command: str, working_dir: Path) -> CommandOutcome:
        """
        Spawns the command and blocks until it finishes.

        Args:
            command (str): Command line, split with POSIX shell rules.
            working_dir (Path): Directory the child runs in.

        Returns:
            CommandOutcome: Exit code and elapsed time.

        Raises:
            SpawnError: If the command could not be started.
        """
        try:
            args = shlex.split(command)
        except ValueError as e:
            raise SpawnError(ErrorReason.COMMAND_NOT_FOUND, f"cannot parse command {command!r}: {e}") from e
        if not args:
            raise SpawnError(ErrorReason.COMMAND_NOT_FOUND, "command is empty")

        logger.info(f"Running '{command}' in {working_dir}...")
        started = time.monotonic()

        try:
            process = await asyncio.create_subprocess_exec(*args, cwd=str(working_dir))
        except OSError as e:
            raise SpawnError(ErrorReason.COMMAND_NOT_FOUND, f"cannot start {args[0]!r}: {e}") from e

        returncode = await process.wait()
        return CommandOutcome(command=command, returncode=returncode, elapsed=time.monotonic() - started)
