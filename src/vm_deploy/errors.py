"""Failures that abort a provisioning run."""


class ProvisionError(Exception):
    """Base exception for every terminal provisioning failure."""

    exit_code = 1


class UsageError(ProvisionError):
    """Bad or missing run arguments."""


class CommandError(ProvisionError):
    """An external command exited with a non-zero status."""

    def __init__(self, args: list[str], returncode: int, stderr: str = ""):
        self.command = args
        self.returncode = returncode
        self.stderr = stderr.strip()
        detail = f": {self.stderr}" if self.stderr else ""
        super().__init__(f"'{' '.join(args)}' exited with status {returncode}{detail}")


class PackageInstallError(ProvisionError):
    pass


class ContainerError(ProvisionError):
    """Pull, stop, remove or run of a container failed."""


class ProxyConfigError(ProvisionError):
    """Rendering or validating the nginx site failed."""


class CertificateError(ProvisionError):
    """Certificate issuance failed or the renewal timer is missing."""


class ReadinessTimeoutError(ProvisionError):
    pass


class RedirectVerificationError(ProvisionError):
    pass
