from rich.console import Console

from .errors import CommandError, PackageInstallError
from .shell import HostShell, Systemd

console = Console()


class PackageInstaller:
    def __init__(self, shell: HostShell, systemd: Systemd):
        self.shell = shell
        self.systemd = systemd

    def is_installed(self, name: str) -> bool:
        return self.shell.succeeds(["dpkg", "-s", name])

    def ensure_installed(self, name: str):
        if self.is_installed(name):
            console.print(f"   [dim]{name} is already installed.[/dim]")
            return

        console.print(f"   [blue]Installing {name}...[/blue]")
        try:
            self.shell.run(["apt-get", "install", "-y", name])
        except CommandError as e:
            raise PackageInstallError(f"Failed to install {name}: {e}") from e

    def ensure_all(self, names: list[str]):
        """Refreshes the index once, then installs every missing package in order."""
        console.print("[bold]==> Installing required packages if missing...[/bold]")
        try:
            self.shell.run(["apt-get", "update"])
        except CommandError as e:
            raise PackageInstallError(f"Package index refresh failed: {e}") from e

        for name in names:
            self.ensure_installed(name)

    def ensure_docker_service(self):
        console.print("[bold]==> Enabling and starting Docker...[/bold]")
        try:
            self.systemd.enable("docker")
            self.systemd.start("docker")
        except CommandError as e:
            raise PackageInstallError(f"Could not start the Docker service: {e}") from e
