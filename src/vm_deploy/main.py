import sys
from pathlib import Path

import click
import yaml
from pydantic import ValidationError
from rich.console import Console

from .errors import ProvisionError, UsageError
from .models import RunConfig
from .provisioner import Provisioner

console = Console()

RUN_FILE_KEYS = {"image", "domain", "email", "staging"}


class InstallerCommand(click.Command):
    """Click command whose usage errors exit with status 1."""

    def main(self, *args, **kwargs):
        kwargs["standalone_mode"] = False
        try:
            return super().main(*args, **kwargs)
        except click.ClickException as e:
            e.show()
            sys.exit(1)
        except click.Abort:
            console.print("[bold red]Aborted![/bold red]")
            sys.exit(1)


def load_run_file(path: Path) -> dict:
    """Reads image/domain/email/staging from a YAML run file."""
    with open(path) as f:
        try:
            raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise UsageError(f"{path} is not valid YAML: {e}") from e

    if not isinstance(raw, dict):
        raise UsageError(f"{path} must contain a mapping")
    unknown = set(raw) - RUN_FILE_KEYS
    if unknown:
        raise UsageError(f"{path} has unknown keys: {', '.join(sorted(unknown))}")
    return raw


def build_config(values: dict, mode: str) -> RunConfig:
    try:
        return RunConfig.model_validate({**values, "mode": mode})
    except ValidationError as e:
        reasons = "; ".join(err["msg"].removeprefix("Value error, ") for err in e.errors())
        raise UsageError(reasons) from e


def execute(config: RunConfig):
    try:
        Provisioner(config).run()
    except ProvisionError as e:
        console.print(f"[bold red]❌ {type(e).__name__}: {e}[/bold red]")
        sys.exit(e.exit_code)


@click.command(cls=InstallerCommand)
@click.option("--image", help="Container image to deploy, e.g. registry/app:1.0")
@click.option("--domain", help="Apex domain to serve over HTTPS (www alias is derived)")
@click.option("--email", help="Certificate contact address (default: admin@<domain>)")
@click.option("--staging", is_flag=True, help="Request a staging certificate")
@click.option(
    "--config",
    "run_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="YAML file with image/domain/email/staging; flags take precedence",
)
@click.pass_context
def cli(ctx, image, domain, email, staging, run_file):
    """Provision this host: packages, app container, nginx, TLS and HTTPS checks."""
    try:
        values = load_run_file(run_file) if run_file else {}
        values.update({k: v for k, v in {"image": image, "domain": domain, "email": email}.items() if v})
        if staging:
            values["staging"] = True
        config = build_config(values, mode="full")
    except UsageError as e:
        raise click.UsageError(str(e), ctx) from e

    execute(config)


@click.command(cls=InstallerCommand)
@click.argument("image")
@click.argument("domain")
@click.option("--email", help="Certificate contact address (default: admin@<domain>)")
@click.option("--staging", is_flag=True, help="Request a staging certificate")
@click.pass_context
def simple_cli(ctx, image, domain, email, staging):
    """Deploy IMAGE behind nginx for DOMAIN with an apex-only certificate."""
    try:
        config = build_config({"image": image, "domain": domain, "email": email, "staging": staging}, mode="simple")
    except UsageError as e:
        raise click.UsageError(str(e), ctx) from e

    execute(config)


if __name__ == "__main__":
    cli()
