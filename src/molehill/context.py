"""Process-scoped state shared by the HTTP layer, scans and command runs."""

from pathlib import Path
from typing import Callable, Optional

from molehill.broadcast import BroadcastHub
from molehill.config import Settings
from molehill.errors import MoleNotFoundError
from molehill.metrics import collect_status
from molehill.models import CommandOutcome, SystemStatus
from molehill.runner import NOT_FOUND_MESSAGE, CommandRunner, find_mole_script


class AppContext:
    """
    Built once at startup and passed explicitly to everything that needs the
    log hub, the command runner or settings.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        hub: Optional[BroadcastHub] = None,
        runner: Optional[CommandRunner] = None,
        status_provider: Optional[Callable[[], SystemStatus]] = None,
    ):
        self.settings = settings or Settings.from_env()
        self.hub = hub or BroadcastHub(self.settings.log_file, self.settings.log_queue_size)
        self.runner = runner or CommandRunner(self.hub)
        self.status_provider = status_provider or collect_status

    def find_mole(self) -> Optional[Path]:
        return find_mole_script(self.settings, self.hub.log)

    def require_mole(self) -> Path:
        """Like find_mole, but raises MoleNotFoundError instead of returning None."""
        mole = self.find_mole()
        if mole is None:
            raise MoleNotFoundError(NOT_FOUND_MESSAGE)
        return mole

    def run_mole(
        self,
        *args: str,
        env: Optional[dict[str, str]] = None,
        broadcast_stripped: bool = False,
    ) -> CommandOutcome:
        """Run the mole CLI, or report that it could not be found."""
        try:
            mole = self.require_mole()
        except MoleNotFoundError as e:
            return CommandOutcome(success=False, message=str(e))
        return self.runner.run(mole, args, env=env, broadcast_stripped=broadcast_stripped)
