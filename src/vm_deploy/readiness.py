import time
from typing import Callable

import httpx
from rich.console import Console

from .errors import ReadinessTimeoutError, RedirectVerificationError
from .retry import retry_until
from .settings import AppSettings, get_settings

console = Console()


class ReadinessVerifier:
    """Probes the public endpoints once the site is live."""

    def __init__(
        self,
        client: httpx.Client | None = None,
        insecure_client: httpx.Client | None = None,
        settings: AppSettings | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings or get_settings()
        timeout = self.settings.HTTP_TIMEOUT
        if client is None:
            client = httpx.Client(timeout=timeout, follow_redirects=False)
        self.client = client
        # The www alias check must not depend on the alias being in the certificate.
        if insecure_client is None:
            insecure_client = httpx.Client(timeout=timeout, follow_redirects=False, verify=False)
        self.insecure_client = insecure_client
        self.sleep = sleep

    def _head(self, url: str, insecure: bool = False) -> httpx.Response:
        client = self.insecure_client if insecure else self.client
        return client.head(url)

    def is_up(self, url: str) -> bool:
        try:
            return self._head(url).is_success
        except httpx.HTTPError:
            return False

    def wait_until_ready(self, domain: str, max_attempts: int | None = None, interval: float | None = None):
        max_attempts = max_attempts if max_attempts is not None else self.settings.READINESS_MAX_ATTEMPTS
        interval = interval if interval is not None else self.settings.READINESS_INTERVAL
        url = f"https://{domain}"

        console.print(f"[bold]==> Waiting for HTTPS server to come up at {url}...[/bold]")

        def report(attempt: int):
            console.print(f"   [dim]⏳ Attempt {attempt}: server not up yet, retrying in {interval:g}s...[/dim]")

        if not retry_until(lambda: self.is_up(url), max_attempts, interval, on_retry=report, sleep=self.sleep):
            console.print(f"[bold red]❌ Timed out waiting for {url} to become available.[/bold red]")
            raise ReadinessTimeoutError(f"{url} did not answer with success after {max_attempts} attempts")

        console.print(f"[green]✅ Domain is accessible via HTTPS: {url}[/green]")

    def _probe(self, url: str, insecure: bool = False) -> httpx.Response:
        try:
            return self._head(url, insecure=insecure)
        except httpx.HTTPError as e:
            raise RedirectVerificationError(f"Request to {url} failed: {e}") from e

    @staticmethod
    def _points_at_apex(response: httpx.Response, domain: str) -> bool:
        location = response.headers.get("location", "")
        apex = f"https://{domain}"
        return location == apex or location.startswith(apex + "/")

    def verify_redirects(self, domain: str, include_www: bool = True):
        apex = f"https://{domain}"

        console.print("[bold]==> Verifying HTTP to HTTPS redirection...[/bold]")
        response = self._probe(f"http://{domain}")
        if not response.is_redirect:
            raise RedirectVerificationError(f"http://{domain} answered {response.status_code}, expected a redirect")
        console.print("[green]✅ HTTP correctly redirects to HTTPS.[/green]")

        if include_www:
            console.print("[bold]==> Verifying www redirects to the apex domain...[/bold]")
            response = self._probe(f"http://www.{domain}")
            if response.status_code != 301 or not self._points_at_apex(response, domain):
                raise RedirectVerificationError(
                    f"http://www.{domain} answered {response.status_code} "
                    f"-> {response.headers.get('location')!r}, expected 301 -> {apex}"
                )
            console.print(f"[green]✅ http://www.{domain} redirects to {apex}.[/green]")

            response = self._probe(f"https://www.{domain}", insecure=True)
            if not self._points_at_apex(response, domain):
                raise RedirectVerificationError(
                    f"https://www.{domain} -> {response.headers.get('location')!r}, expected {apex}"
                )
            console.print(f"[green]✅ https://www.{domain} redirects to {apex}.[/green]")

        response = self._probe(apex)
        if not response.is_success:
            raise RedirectVerificationError(f"{apex} answered {response.status_code} on final check")
        console.print(f"[green]✅ {apex} is serving the application.[/green]")

    def close(self):
        self.client.close()
        self.insecure_client.close()
