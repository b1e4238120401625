import subprocess
from unittest.mock import MagicMock

import docker.errors
import pytest
from click.testing import CliRunner

from vm_deploy.settings import AppSettings
from vm_deploy.shell import HostShell, Systemd


@pytest.fixture
def cli_runner():
    """Provides a Click CLI runner for testing commands."""
    return CliRunner()


@pytest.fixture
def settings(tmp_path):
    """Settings pointing every host path into a temporary directory."""
    return AppSettings(
        NGINX_SITES_AVAILABLE=tmp_path / "sites-available",
        NGINX_SITES_ENABLED=tmp_path / "sites-enabled",
        LETSENCRYPT_DIR=tmp_path / "letsencrypt",
        READINESS_MAX_ATTEMPTS=5,
        READINESS_INTERVAL=0.0,
    )


@pytest.fixture
def shell():
    """A HostShell whose commands all succeed with empty output."""
    mock_shell = MagicMock(spec=HostShell)
    mock_shell.run.side_effect = lambda args, check=True: subprocess.CompletedProcess(args, 0, "", "")
    mock_shell.succeeds.return_value = True
    return mock_shell


@pytest.fixture
def systemd(shell):
    return Systemd(shell)


@pytest.fixture
def mock_docker_client():
    """Provides a mocked Docker client."""
    mock_client = MagicMock()
    mock_client.containers.list.return_value = []
    mock_client.containers.get.side_effect = docker.errors.NotFound("No such container: app")
    return mock_client


@pytest.fixture
def issue_certificate(settings):
    """Writes certificate files where certbot would leave them."""

    def _issue(domain: str):
        live = settings.LETSENCRYPT_DIR / "live" / domain
        live.mkdir(parents=True, exist_ok=True)
        (live / "fullchain.pem").write_text("cert")
        (live / "privkey.pem").write_text("key")
        return live

    return _issue
