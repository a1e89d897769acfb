"""External command execution with live output streaming."""

import logging
import os
import re
import shutil
import subprocess
import sys
import threading
from pathlib import Path
from typing import Callable, Iterable, Optional

from molehill.broadcast import BroadcastHub
from molehill.config import Settings
from molehill.models import CommandOutcome

logger = logging.getLogger(__name__)

SUCCESS_MESSAGE = "Completed successfully"
NOT_FOUND_MESSAGE = "Mole CLI not found"

# Environment for runs without a terminal: skip prompts, ask for admin via GUI
GUI_ENV = {
    "MOLE_NO_CONFIRM": "1",
    "MOLE_GUI_MODE": "1",
}

ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;]*[a-zA-Z]")


def strip_ansi(text: str) -> str:
    """Remove terminal color/control sequences."""
    return ANSI_ESCAPE.sub("", text)


def _exit_message(returncode: int) -> str:
    if returncode < 0:
        return f"signal: {-returncode}"
    return f"exit status {returncode}"


class CommandRunner:
    """
    Runs an external program and streams its output to a BroadcastHub.

    stdout and stderr are each drained by their own thread, so the relative
    order of lines from the two streams is not deterministic. Runs are not
    cancellable and have no timeout.
    """

    def __init__(self, hub: BroadcastHub):
        self.hub = hub

    def run(
        self,
        executable: Path | str,
        args: Iterable[str] = (),
        env: Optional[dict[str, str]] = None,
        broadcast_stripped: bool = False,
    ) -> CommandOutcome:
        """
        Run a command to completion.

        Args:
            executable: Program to run; its directory becomes the working directory
            args: Arguments passed to the program
            env: Extra environment variables layered over os.environ
            broadcast_stripped: Strip ANSI sequences from broadcast lines too

        Returns:
            CommandOutcome; success reflects only the exit status
        """
        executable = Path(executable)
        arg_list = [str(a) for a in args]
        child_env = dict(os.environ)
        if env:
            child_env.update(env)

        self.hub.log("Running command: %s %s", executable, arg_list)

        try:
            process = subprocess.Popen(
                [str(executable), *arg_list],
                cwd=str(executable.parent),
                env=child_env,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
            )
        except OSError as e:
            error_text = f"Error starting command: {e}"
            logger.error(error_text)
            self.hub.publish(error_text)
            return CommandOutcome(success=False, message=str(e))

        output: list[str] = []
        output_lock = threading.Lock()

        def drain(stream) -> None:
            with stream:
                for raw in stream:
                    line = raw.rstrip("\r\n")
                    with output_lock:
                        output.append(line + "\n")
                    self.hub.publish(strip_ansi(line) if broadcast_stripped else line)

        readers = [
            threading.Thread(target=drain, args=(process.stdout,), daemon=True),
            threading.Thread(target=drain, args=(process.stderr,), daemon=True),
        ]
        for reader in readers:
            reader.start()

        returncode = process.wait()
        for reader in readers:
            reader.join()

        succeeded = returncode == 0
        return CommandOutcome(
            success=succeeded,
            message=SUCCESS_MESSAGE if succeeded else _exit_message(returncode),
            output=strip_ansi("".join(output)),
        )


def mole_candidates(settings: Settings) -> list[Path]:
    """Locations to look for the mole script, most specific first."""
    candidates: list[Path] = []
    if settings.mole_path:
        candidates.append(settings.mole_path)
    if settings.mole_dir:
        candidates.append(settings.mole_dir / "mole")

    candidates.append(Path("mole"))
    candidates.append(Path("../../mole"))
    # Bundled app layout: Contents/MacOS/<binary> -> Contents/Resources/mole
    candidates.append(Path(sys.executable).parent / ".." / "Resources" / "mole")
    candidates.append(Path("../Resources/mole"))

    on_path = shutil.which("mole")
    if on_path:
        candidates.append(Path(on_path))

    candidates.append(Path("/usr/local/bin/mole"))
    return candidates


def find_mole_script(
    settings: Settings,
    log: Callable[..., object] = logger.info,
) -> Optional[Path]:
    """
    Locate the mole script.

    Args:
        settings: Settings carrying optional explicit locations
        log: printf-style logger used to report the search

    Returns:
        Absolute path to the script, or None if no candidate exists
    """
    log("Finding Mole CLI script...")
    for candidate in mole_candidates(settings):
        if candidate.is_file():
            found = candidate.resolve()
            log("Found Mole CLI at: %s", found)
            return found

    log("ERROR: Mole CLI not found in any expected location")
    return None
