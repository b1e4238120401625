from rich.console import Console

from .errors import CertificateError, CommandError
from .models import ProxyVariant, RunConfig
from .nginx import ProxyConfigurator
from .settings import AppSettings, get_settings
from .shell import HostShell, Systemd

console = Console()


class CertificateProvisioner:
    """Obtains the Let's Encrypt certificate and switches the site to TLS."""

    def __init__(
        self,
        shell: HostShell,
        systemd: Systemd,
        proxy: ProxyConfigurator,
        settings: AppSettings | None = None,
    ):
        self.shell = shell
        self.systemd = systemd
        self.proxy = proxy
        self.settings = settings or get_settings()

    def certbot_command(self, config: RunConfig) -> list[str]:
        # certonly: certbot authenticates through nginx but leaves site files alone,
        # the TLS site is rendered by ProxyConfigurator afterwards. The lineage is
        # pinned to the apex so its files land where ProxyConfigurator reads them.
        args = [
            "certbot", "certonly", "--nginx",
            "--non-interactive", "--agree-tos", "--keep-until-expiring",
            "--cert-name", config.domain, "--expand",
            "-d", config.domain,
        ]
        if config.include_www:
            args += ["-d", config.www_domain]
        args += ["-m", config.certificate_email]
        if config.staging:
            args.append("--staging")
        return args

    def issue_or_renew(self, config: RunConfig):
        names = f"{config.domain} and {config.www_domain}" if config.include_www else config.domain
        console.print(f"[bold]==> Requesting HTTPS certificate for {names}...[/bold]")
        try:
            self.shell.run(self.certbot_command(config))
        except CommandError as e:
            raise CertificateError(f"certbot could not issue a certificate for {config.domain}: {e}") from e

        fullchain = self.proxy.certificate_for(config.domain).fullchain
        if not fullchain.exists():
            raise CertificateError(f"certbot reported success but {fullchain} is missing")
        console.print(f"[green]✅ Certificate present at {fullchain.parent}[/green]")

        self.proxy.apply_config(config.domain, ProxyVariant.TLS, include_www=config.include_www)
        self.verify_renewal_timer()

    def verify_renewal_timer(self):
        console.print("[bold]==> Verifying Certbot automatic renewal...[/bold]")
        timer = f"{self.settings.RENEWAL_TIMER}.timer"
        if not self.systemd.is_active(timer):
            console.print("[bold red]❌ Certbot auto-renewal timer is NOT active![/bold red]")
            raise CertificateError(f"{timer} is not active; certificates would not renew")
        console.print("[green]✅ Certbot auto-renewal timer is active.[/green]")
