"""Handles for the host's command line tools."""

import subprocess

from .errors import CommandError


class HostShell:
    """Runs external commands on the local host."""

    def run(self, args: list[str], check: bool = True) -> subprocess.CompletedProcess:
        """Run a command to completion.

        Args:
            args: Command and arguments, no shell interpolation
            check: Raise on non-zero exit status

        Returns:
            Completed process with captured text output

        Raises:
            CommandError: If the command exits non-zero or cannot be started
        """
        try:
            result = subprocess.run(args, capture_output=True, text=True)
        except OSError as e:
            raise CommandError(args, 127, str(e)) from e

        if check and result.returncode != 0:
            raise CommandError(args, result.returncode, result.stderr or result.stdout)
        return result

    def succeeds(self, args: list[str]) -> bool:
        try:
            return self.run(args, check=False).returncode == 0
        except CommandError:
            return False


class Systemd:
    def __init__(self, shell: HostShell):
        self.shell = shell

    def is_active(self, unit: str) -> bool:
        return self.shell.succeeds(["systemctl", "is-active", "--quiet", unit])

    def enable(self, unit: str):
        self.shell.run(["systemctl", "enable", unit])

    def start(self, unit: str):
        self.shell.run(["systemctl", "start", unit])

    def reload(self, unit: str):
        self.shell.run(["systemctl", "reload", unit])

    def reload_or_start(self, unit: str) -> str:
        """Reloads a running unit, cold-starts a stopped one. Returns the action taken."""
        if self.is_active(unit):
            self.reload(unit)
            return "reloaded"
        self.start(unit)
        return "started"
