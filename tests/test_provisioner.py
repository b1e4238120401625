import subprocess
from unittest.mock import MagicMock, call, patch

import httpx
import pytest

from vm_deploy.containers import ContainerRunner
from vm_deploy.errors import CertificateError, ContainerError, ReadinessTimeoutError
from vm_deploy.models import ProxyVariant, RunConfig
from vm_deploy.provisioner import Provisioner
from vm_deploy.readiness import ReadinessVerifier


@pytest.fixture
def steps():
    """One parent mock so call order across components can be asserted."""
    manager = MagicMock()
    manager.proxy.has_certificate.return_value = False
    return manager


def provisioner_for(config, settings, steps):
    return Provisioner(
        config,
        settings=settings,
        shell=MagicMock(),
        packages=steps.packages,
        containers=steps.containers,
        proxy=steps.proxy,
        certificates=steps.certificates,
        verifier=steps.verifier,
    )


class TestProvisioner:
    """Ordering and fail-fast behaviour of the workflow."""

    def test_full_run_order(self, settings, steps, capsys):
        config = RunConfig(image="registry/app:1.0", domain="example.com")

        provisioner_for(config, settings, steps).run()

        assert steps.mock_calls == [
            call.packages.ensure_all(settings.PACKAGES),
            call.packages.ensure_docker_service(),
            call.containers.deploy("registry/app:1.0"),
            call.proxy.has_certificate("example.com"),
            call.proxy.apply_config("example.com", ProxyVariant.HTTPS_REDIRECT, include_www=True),
            call.certificates.issue_or_renew(config),
            call.verifier.wait_until_ready("example.com"),
            call.verifier.verify_redirects("example.com", include_www=True),
        ]
        assert "All checks passed! App is live and secured at: https://example.com" in capsys.readouterr().out

    def test_simple_mode_proxies_over_http_first(self, settings, steps):
        config = RunConfig(image="registry/app:1.0", domain="example.com", mode="simple")

        provisioner_for(config, settings, steps).run()

        steps.proxy.apply_config.assert_called_once_with("example.com", ProxyVariant.HTTP_PROXY, include_www=False)
        steps.verifier.verify_redirects.assert_called_once_with("example.com", include_www=False)

    def test_rerun_with_certificate_keeps_tls_site(self, settings, steps):
        steps.proxy.has_certificate.return_value = True

        provisioner_for(RunConfig(image="registry/app:1.0", domain="example.com"), settings, steps).run()

        steps.proxy.apply_config.assert_called_once_with("example.com", ProxyVariant.TLS, include_www=True)
        steps.certificates.issue_or_renew.assert_called_once()

    def test_image_only_skips_domain_steps(self, settings, steps):
        provisioner_for(RunConfig(image="registry/app:1.0"), settings, steps).run()

        steps.containers.deploy.assert_called_once_with("registry/app:1.0")
        steps.proxy.apply_config.assert_not_called()
        steps.certificates.issue_or_renew.assert_not_called()
        steps.verifier.wait_until_ready.assert_not_called()

    def test_domain_only_leaves_containers_alone(self, settings, steps):
        provisioner_for(RunConfig(domain="example.com"), settings, steps).run()

        steps.containers.deploy.assert_not_called()
        steps.certificates.issue_or_renew.assert_called_once()

    def test_container_failure_aborts_run(self, settings, steps):
        steps.containers.deploy.side_effect = ContainerError("pull access denied")

        with pytest.raises(ContainerError):
            provisioner_for(RunConfig(image="registry/app:1.0", domain="example.com"), settings, steps).run()
        steps.proxy.apply_config.assert_not_called()

    def test_missing_timer_aborts_before_verification(self, settings, steps):
        steps.certificates.issue_or_renew.side_effect = CertificateError("timer missing")

        with pytest.raises(CertificateError):
            provisioner_for(RunConfig(image="registry/app:1.0", domain="example.com"), settings, steps).run()
        steps.verifier.wait_until_ready.assert_not_called()

    def test_readiness_timeout_stops_redirect_checks(self, settings, steps):
        steps.verifier.wait_until_ready.side_effect = ReadinessTimeoutError("timed out")

        with pytest.raises(ReadinessTimeoutError):
            provisioner_for(RunConfig(image="registry/app:1.0", domain="example.com"), settings, steps).run()
        steps.verifier.verify_redirects.assert_not_called()

    @patch("vm_deploy.provisioner.ReadinessVerifier")
    def test_own_verifier_is_closed_on_failure(self, mock_verifier_cls, settings, steps):
        mock_verifier_cls.return_value.wait_until_ready.side_effect = ReadinessTimeoutError("timed out")
        provisioner = Provisioner(
            RunConfig(image="registry/app:1.0", domain="example.com"),
            settings=settings,
            shell=MagicMock(),
            packages=steps.packages,
            containers=steps.containers,
            proxy=steps.proxy,
            certificates=steps.certificates,
        )

        with pytest.raises(ReadinessTimeoutError):
            provisioner.run()
        mock_verifier_cls.assert_called_once_with(settings=settings)
        mock_verifier_cls.return_value.close.assert_called_once_with()

    def test_injected_verifier_is_left_open(self, settings, steps):
        provisioner_for(RunConfig(image="registry/app:1.0", domain="example.com"), settings, steps).run()

        steps.verifier.close.assert_not_called()


class TestProvisionerScenario:
    """registry/app:1.0 on example.com against fake host handles."""

    @pytest.fixture
    def host(self, settings, mock_docker_client, issue_certificate):
        commands = []

        def run(args, check=True):
            commands.append(args)
            if args[:2] == ["certbot", "certonly"]:
                issue_certificate("example.com")
            return subprocess.CompletedProcess(args, 0, "", "")

        shell = MagicMock()
        shell.run.side_effect = run
        shell.succeeds.side_effect = lambda args: args[0] == "dpkg" or args[:2] == ["systemctl", "is-active"]
        stale = [MagicMock(), MagicMock()]
        for index, container in enumerate(stale):
            container.name = f"old-{index}"
        mock_docker_client.containers.list.return_value = stale
        return shell, commands, stale

    def test_end_state(self, settings, mock_docker_client, host):
        shell, commands, stale = host

        def site(request):
            if request.url.scheme == "https" and request.url.host == "example.com":
                return httpx.Response(200)
            return httpx.Response(301, headers={"location": "https://example.com/"})

        verifier = ReadinessVerifier(
            client=httpx.Client(transport=httpx.MockTransport(site)),
            insecure_client=httpx.Client(transport=httpx.MockTransport(site)),
            settings=settings,
            sleep=MagicMock(),
        )
        config = RunConfig(image="registry/app:1.0", domain="example.com")

        Provisioner(
            config,
            settings=settings,
            shell=shell,
            containers=ContainerRunner(client=mock_docker_client, settings=settings),
            verifier=verifier,
        ).run()

        for container in stale:
            container.stop.assert_called_once()
            container.remove.assert_called_once()
        mock_docker_client.containers.run.assert_called_once_with(
            "registry/app:1.0",
            name="app",
            ports={"7860/tcp": 7860},
            restart_policy={"Name": "unless-stopped"},
            detach=True,
        )

        site_text = (settings.NGINX_SITES_AVAILABLE / "app").read_text()
        assert site_text.count("server {") == 4
        assert "server_name example.com;" in site_text
        assert "server_name www.example.com;" in site_text
        assert (settings.NGINX_SITES_ENABLED / "app").is_symlink()

        assert ["apt-get", "install", "-y", "nginx"] not in commands
        assert any(c[:2] == ["certbot", "certonly"] for c in commands)
        shell.succeeds.assert_any_call(["systemctl", "is-active", "--quiet", "certbot.timer"])
