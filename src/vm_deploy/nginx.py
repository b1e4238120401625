"""
nginx site rendering and activation.

Sites are built from typed server blocks instead of text templates. Every value
that lands in the output goes through `_token`, which refuses anything that
could terminate a directive or open a new block.
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path

from rich.console import Console

from .errors import CommandError, ProxyConfigError
from .models import ProxyVariant
from .settings import AppSettings, get_settings
from .shell import HostShell, Systemd

console = Console()

SAFE_TOKEN = re.compile(r"^[A-Za-z0-9_.:/\-]+$")

FORWARDED_HEADERS = [
    ("Host", "$host"),
    ("X-Real-IP", "$remote_addr"),
    ("X-Forwarded-For", "$proxy_add_x_forwarded_for"),
    ("X-Forwarded-Proto", "$scheme"),
]


def _token(value: str) -> str:
    if not SAFE_TOKEN.match(value):
        raise ProxyConfigError(f"Refusing to render unsafe nginx value: {value!r}")
    return value


@dataclass
class Location:
    path: str
    proxy_pass: str | None = None
    redirect_to: str | None = None
    headers: list[tuple[str, str]] = field(default_factory=lambda: list(FORWARDED_HEADERS))

    def render(self, indent: str = "    ") -> list[str]:
        inner = indent * 2
        lines = [f"{indent}location {_token(self.path)} {{"]
        if self.redirect_to:
            # Kept inside a location so exact-match ACME challenge locations still win.
            lines.append(f"{inner}return 301 {_token(self.redirect_to)}$request_uri;")
        else:
            lines.append(f"{inner}proxy_pass {_token(self.proxy_pass)};")
            # Header values are nginx variables from a fixed table, never user input.
            lines += [f"{inner}proxy_set_header {name} {value};" for name, value in self.headers]
        lines.append(f"{indent}}}")
        return lines


@dataclass
class Certificate:
    fullchain: Path
    privkey: Path
    options: Path | None = None
    dhparam: Path | None = None


@dataclass
class ServerBlock:
    server_names: list[str]
    port: int = 80
    certificate: Certificate | None = None
    redirect_to: str | None = None
    locations: list[Location] = field(default_factory=list)

    def render(self) -> str:
        indent = "    "
        listen = f"{self.port} ssl" if self.certificate else str(self.port)
        lines = [
            "server {",
            f"{indent}listen {listen};",
            f"{indent}listen [::]:{listen};",
            f"{indent}server_name {' '.join(_token(name) for name in self.server_names)};",
        ]

        if self.certificate:
            lines.append("")
            lines.append(f"{indent}ssl_certificate {_token(str(self.certificate.fullchain))};")
            lines.append(f"{indent}ssl_certificate_key {_token(str(self.certificate.privkey))};")
            if self.certificate.options:
                lines.append(f"{indent}include {_token(str(self.certificate.options))};")
            if self.certificate.dhparam:
                lines.append(f"{indent}ssl_dhparam {_token(str(self.certificate.dhparam))};")

        locations = list(self.locations)
        if self.redirect_to:
            locations.insert(0, Location("/", redirect_to=self.redirect_to))

        for location in locations:
            lines.append("")
            lines += location.render(indent)

        lines.append("}")
        return "\n".join(lines)


def render_site(blocks: list[ServerBlock]) -> str:
    return "\n\n".join(block.render() for block in blocks) + "\n"


def build_blocks(
    variant: ProxyVariant,
    domain: str,
    upstream_port: int,
    include_www: bool = True,
    certificate: Certificate | None = None,
) -> list[ServerBlock]:
    """Server blocks for one lifecycle phase of the site."""
    www = f"www.{domain}"
    apex_url = f"https://{domain}"
    proxy = Location("/", proxy_pass=f"http://localhost:{upstream_port}")

    if variant == ProxyVariant.HTTP_PROXY:
        names = [domain, www] if include_www else [domain]
        return [ServerBlock(names, locations=[proxy])]

    if variant == ProxyVariant.HTTPS_REDIRECT:
        blocks = [ServerBlock([domain], redirect_to=apex_url)]
        if include_www:
            blocks.append(ServerBlock([www], redirect_to=apex_url))
        return blocks

    if certificate is None:
        raise ProxyConfigError(f"TLS site for {domain} needs a certificate")

    blocks = [ServerBlock([domain], redirect_to=apex_url)]
    if include_www:
        blocks.append(ServerBlock([www], redirect_to=apex_url))
        blocks.append(ServerBlock([www], port=443, certificate=certificate, redirect_to=apex_url))
    blocks.append(ServerBlock([domain], port=443, certificate=certificate, locations=[proxy]))
    return blocks


class ProxyConfigurator:
    def __init__(self, shell: HostShell, systemd: Systemd, settings: AppSettings | None = None):
        self.shell = shell
        self.systemd = systemd
        self.settings = settings or get_settings()

    @property
    def site_path(self) -> Path:
        return self.settings.NGINX_SITES_AVAILABLE / self.settings.SITE_NAME

    @property
    def enabled_path(self) -> Path:
        return self.settings.NGINX_SITES_ENABLED / self.settings.SITE_NAME

    @property
    def staging_path(self) -> Path:
        return self.settings.NGINX_SITES_AVAILABLE / f".{self.settings.SITE_NAME}.staging"

    def certificate_for(self, domain: str) -> Certificate:
        base = self.settings.LETSENCRYPT_DIR
        live = base / "live" / domain
        options = base / "options-ssl-nginx.conf"
        dhparam = base / "ssl-dhparams.pem"
        return Certificate(
            fullchain=live / "fullchain.pem",
            privkey=live / "privkey.pem",
            options=options if options.exists() else None,
            dhparam=dhparam if dhparam.exists() else None,
        )

    def has_certificate(self, domain: str) -> bool:
        cert = self.certificate_for(domain)
        return cert.fullchain.exists() and cert.privkey.exists()

    def render(self, domain: str, variant: ProxyVariant, include_www: bool = True) -> str:
        certificate = self.certificate_for(domain) if variant == ProxyVariant.TLS else None
        blocks = build_blocks(variant, domain, self.settings.HOST_PORT, include_www, certificate)
        return render_site(blocks)

    def apply_config(self, domain: str, variant: ProxyVariant, include_www: bool = True):
        console.print(f"[bold]==> Setting up NGINX reverse proxy for {domain} ({variant.value})...[/bold]")
        text = self.render(domain, variant, include_www)

        try:
            self.site_path.parent.mkdir(parents=True, exist_ok=True)
            self.staging_path.write_text(text)
        except OSError as e:
            raise ProxyConfigError(f"Could not stage {self.staging_path}: {e}") from e

        self._validate_staged()
        previous = self.site_path.read_text() if self.site_path.exists() else None
        self._promote()

        console.print("[bold]==> Testing NGINX configuration...[/bold]")
        try:
            self.shell.run(["nginx", "-t"])
        except CommandError as e:
            self._rollback(previous)
            raise ProxyConfigError(f"nginx rejected the new site, previous config restored: {e}") from e

        self._reload()

    def _validate_staged(self):
        """Checks the staged site on its own before it can affect the live server."""
        harness = self.settings.NGINX_SITES_AVAILABLE / f".{self.settings.SITE_NAME}.harness.conf"
        pid = self.settings.NGINX_SITES_AVAILABLE / f".{self.settings.SITE_NAME}.pid"
        try:
            harness.write_text(f"pid {pid};\nevents {{}}\nhttp {{\n    include {self.staging_path};\n}}\n")
            self.shell.run(["nginx", "-t", "-q", "-c", str(harness)])
        except (CommandError, OSError) as e:
            self.staging_path.unlink(missing_ok=True)
            raise ProxyConfigError(f"Rendered site failed validation: {e}") from e
        finally:
            harness.unlink(missing_ok=True)

    def _promote(self):
        try:
            os.replace(self.staging_path, self.site_path)
            self.enabled_path.parent.mkdir(parents=True, exist_ok=True)
            if self.enabled_path.is_symlink() or self.enabled_path.exists():
                self.enabled_path.unlink()
            self.enabled_path.symlink_to(self.site_path)

            default = self.settings.NGINX_SITES_ENABLED / "default"
            if default.is_symlink() or default.exists():
                console.print("   [dim]Removing default site to avoid server_name conflicts...[/dim]")
                default.unlink()
        except OSError as e:
            raise ProxyConfigError(f"Could not activate {self.site_path}: {e}") from e

    def _rollback(self, previous: str | None):
        if previous is None:
            self.enabled_path.unlink(missing_ok=True)
            self.site_path.unlink(missing_ok=True)
        else:
            self.site_path.write_text(previous)

    def _reload(self):
        console.print("[bold]==> Ensuring NGINX service is running...[/bold]")
        try:
            action = self.systemd.reload_or_start("nginx")
        except CommandError as e:
            raise ProxyConfigError(f"Could not reload nginx: {e}") from e
        console.print(f"   [dim]NGINX {action}.[/dim]")
