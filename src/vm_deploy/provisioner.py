from rich.console import Console
from rich.panel import Panel

from .certificates import CertificateProvisioner
from .containers import ContainerRunner
from .models import ProxyVariant, RunConfig
from .nginx import ProxyConfigurator
from .packages import PackageInstaller
from .readiness import ReadinessVerifier
from .settings import AppSettings, get_settings
from .shell import HostShell, Systemd


class Provisioner:
    """
    Runs the provisioning steps strictly in order.
    The first ProvisionError aborts the run; steps already applied stay applied.
    """

    def __init__(
        self,
        config: RunConfig,
        settings: AppSettings | None = None,
        shell: HostShell | None = None,
        packages: PackageInstaller | None = None,
        containers: ContainerRunner | None = None,
        proxy: ProxyConfigurator | None = None,
        certificates: CertificateProvisioner | None = None,
        verifier: ReadinessVerifier | None = None,
    ):
        self.console = Console()
        self.config = config
        self.settings = settings or get_settings()

        shell = shell if shell is not None else HostShell()
        systemd = Systemd(shell)
        self.packages = packages if packages is not None else PackageInstaller(shell, systemd)
        self.containers = containers if containers is not None else ContainerRunner(settings=self.settings)
        self.proxy = proxy if proxy is not None else ProxyConfigurator(shell, systemd, self.settings)
        if certificates is None:
            certificates = CertificateProvisioner(shell, systemd, self.proxy, self.settings)
        self.certificates = certificates
        self._verifier = verifier
        self._owns_verifier = False

    @property
    def verifier(self) -> ReadinessVerifier:
        if self._verifier is None:
            self._verifier = ReadinessVerifier(settings=self.settings)
            self._owns_verifier = True
        return self._verifier

    def run(self):
        try:
            self._run_steps()
        finally:
            if self._owns_verifier:
                self._verifier.close()

    def _run_steps(self):
        config = self.config
        self.console.print(
            Panel.fit(
                "[bold cyan]VM Deploy[/bold cyan]\n"
                f"Mode: [blue]{config.mode}[/blue]\n"
                f"Image: [white]{config.image or '-'}[/white]\n"
                f"Domain: [white]{config.domain or '-'}[/white]",
                title="Provisioning",
            )
        )

        self.packages.ensure_all(self.settings.PACKAGES)
        self.packages.ensure_docker_service()

        if config.image:
            self.containers.deploy(config.image)
        else:
            self.console.print("[yellow]⚠️  No image given, leaving containers untouched.[/yellow]")

        if not config.domain:
            self.console.print("[yellow]⚠️  No domain given, skipping proxy, certificate and HTTPS checks.[/yellow]")
            self.console.print(
                f"[bold green]🎉 Done! Container '{self.settings.CONTAINER_NAME}' "
                f"is serving on port {self.settings.HOST_PORT}.[/bold green]"
            )
            return

        # On re-runs keep serving TLS while certbot renews instead of dropping back to the stub.
        if self.proxy.has_certificate(config.domain):
            variant = ProxyVariant.TLS
        else:
            variant = config.pre_cert_variant
        self.proxy.apply_config(config.domain, variant, include_www=config.include_www)
        self.certificates.issue_or_renew(config)

        self.verifier.wait_until_ready(config.domain)
        self.verifier.verify_redirects(config.domain, include_www=config.include_www)

        self.console.print(
            f"[bold green]🎉 All checks passed! App is live and secured at: https://{config.domain}[/bold green]"
        )
