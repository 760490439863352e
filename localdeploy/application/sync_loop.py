import asyncio
import logging
import time
from typing import Callable, Optional

from localdeploy.application.change_detector import ChangeDetector
from localdeploy.domain.exceptions import CredentialError, SpawnError, TransportError
from localdeploy.domain.models import CommandOutcome, LoopState, SyncResult
from localdeploy.infrastructure.command_runner import CommandRunner
from localdeploy.infrastructure.repository import RepositoryHandle

logger = logging.getLogger(__name__)


class SyncLoop:
    """
    Single-threaded scheduler: sync, decide, run, wait, repeat.

    Cycles never overlap and the command never runs while a fetch is in
    progress. Transport and credential failures skip the cycle; any other
    error aborts the loop and propagates to the caller.
    """

    def __init__(
            self,
            repository: RepositoryHandle,
            runner: CommandRunner,
            command: str,
            interval_seconds: float = 3600,
            detector: Optional[ChangeDetector] = None,
            run_on_start: bool = False,
            clock: Callable[[], float] = time.monotonic
    ):
        self.repository = repository
        self.runner = runner
        self.command = command
        self.interval_seconds = interval_seconds
        self.detector = detector or ChangeDetector()
        self.state = LoopState.IDLE
        self.cycles = 0
        self._initial_run_pending = run_on_start
        self._clock = clock
        self._stop = asyncio.Event()

    def stop(self) -> None:
        """Requests shutdown; a sleeping loop wakes immediately, a running cycle completes first."""
        if not self._stop.is_set():
            logger.info("Shutdown requested.")
        self._stop.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    async def run(self) -> None:
        """Runs cycles until stop() is called. The first cycle starts immediately."""
        logger.info(f"Starting sync loop every {self.interval_seconds:g}s on branch {self.repository.branch}.")

        while not self._stop.is_set():
            cycle_started = self._clock()
            await self.run_cycle()

            if self._stop.is_set():
                break

            remaining = self.interval_seconds - (self._clock() - cycle_started)
            await self._wait(remaining)

        self.state = LoopState.STOPPED
        logger.info(f"Sync loop stopped after {self.cycles} cycles.")

    async def run_cycle(self) -> Optional[CommandOutcome]:
        """
        Performs one sync -> decide -> run pass.

        Returns:
            The outcome of the command if it was run, otherwise None.
        """
        self.cycles += 1
        self.state = LoopState.SYNCING

        try:
            result = await asyncio.to_thread(self.repository.sync)
        except (TransportError, CredentialError) as e:
            logger.warning(f"Sync failed, skipping cycle: {e}")
            self.state = LoopState.IDLE
            return None
        except Exception:
            self.state = LoopState.ABORTED
            raise

        self.state = LoopState.DECIDING
        if not self._should_run(result):
            logger.info(f"No new commits on {self.repository.branch} (tip: {result.new_tip}).")
            self.state = LoopState.IDLE
            return None

        self.state = LoopState.RUNNING
        outcome = await self._run_command()
        self.state = LoopState.IDLE
        return outcome

    def _should_run(self, result: SyncResult) -> bool:
        if self.detector.has_new_commits(result):
            logger.info(f"New commits on {self.repository.branch}: {result.previous_tip} -> {result.new_tip}.")
            self._initial_run_pending = False
            return True
        if self._initial_run_pending:
            logger.info("Running command for the initial state.")
            self._initial_run_pending = False
            return True
        return False

    async def _run_command(self) -> Optional[CommandOutcome]:
        try:
            outcome = await self.runner.run(self.command, self.repository.path)
        except SpawnError as e:
            logger.error(f"Command could not be started: {e}")
            return None

        if outcome.succeeded:
            logger.info(f"Command finished in {outcome.elapsed:.1f}s.")
        elif outcome.signal is not None:
            logger.warning(f"Command killed by signal {outcome.signal} after {outcome.elapsed:.1f}s.")
        else:
            logger.warning(f"Command exited with code {outcome.returncode} after {outcome.elapsed:.1f}s.")
        return outcome

    async def _wait(self, seconds: float) -> None:
        self.state = LoopState.IDLE
        if seconds <= 0:
            return

        logger.info(f"Sleeping {seconds:.0f}s until next sync.")
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
