import asyncio
import logging
import signal
import sys
from dotenv import load_dotenv

from localdeploy.config import Settings
from localdeploy.domain.exceptions import LocalDeployException
from localdeploy.infrastructure.credentials import CredentialProvider
from localdeploy.infrastructure.repository import RepositoryHandle
from localdeploy.infrastructure.command_runner import CommandRunner
from localdeploy.application.sync_loop import SyncLoop

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FATAL = 1


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )


async def main() -> int:
    # Load environment variables from .env file
    load_dotenv()

    try:
        settings = Settings.from_env()
    except LocalDeployException as e:
        configure_logging()
        logger.error(f"Invalid configuration: {e}")
        return EXIT_FATAL

    configure_logging(settings.log_level)

    credentials = CredentialProvider.from_settings(settings)
    repository = RepositoryHandle.from_settings(settings, credentials)
    sync_loop = SyncLoop(
        repository=repository,
        runner=CommandRunner(),
        command=settings.command,
        interval_seconds=settings.interval_seconds,
        run_on_start=settings.run_on_start,
    )

    # Handlers go in before the clone; run() returns at once if a stop arrived meanwhile.
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, sync_loop.stop)

    try:
        try:
            await asyncio.to_thread(repository.open_or_clone)
        except LocalDeployException as e:
            logger.error(f"Cannot prepare repository at {settings.path}: {e}")
            return EXIT_FATAL
        except Exception as e:
            logger.exception(f"An unexpected error occurred while preparing {settings.path}: {e}")
            return EXIT_FATAL

        await sync_loop.run()
    except LocalDeployException as e:
        logger.error(f"Aborting: {e}")
        return EXIT_FATAL
    except Exception as e:
        logger.exception(f"An unexpected error occurred: {e}")
        return EXIT_FATAL
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)

    return EXIT_OK


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
