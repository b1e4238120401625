import docker
from docker.errors import APIError, DockerException, ImageNotFound, NotFound
from docker.models.containers import Container
from rich.console import Console

from .errors import ContainerError
from .models import ContainerSpec
from .settings import AppSettings, get_settings

console = Console()


class ContainerRunner:
    """Keeps exactly one managed application container on the host."""

    def __init__(self, client: docker.DockerClient | None = None, settings: AppSettings | None = None):
        self.settings = settings or get_settings()
        self._client = client

    @property
    def client(self) -> docker.DockerClient:
        # The engine may only have been installed moments ago, so connect on first use.
        if self._client is None:
            try:
                self._client = (
                    docker.from_env(base_url=self.settings.DOCKER_BASE_URL)
                    if self.settings.DOCKER_BASE_URL
                    else docker.from_env()
                )
            except DockerException as e:
                raise ContainerError(f"Could not connect to Docker Daemon: {e}") from e
        return self._client

    def spec_for(self, image: str) -> ContainerSpec:
        return ContainerSpec(
            name=self.settings.CONTAINER_NAME,
            image=image,
            host_port=self.settings.HOST_PORT,
            container_port=self.settings.CONTAINER_PORT,
            restart_policy=self.settings.RESTART_POLICY,
        )

    def deploy(self, image: str) -> Container:
        spec = self.spec_for(image)
        self.clear_running()
        self.remove_leftover(spec.name)
        self.pull(spec.image)
        return self.start(spec)

    def clear_running(self):
        """Stops, then removes, every running container regardless of name or image."""
        console.print("[bold]==> Finding all running Docker containers...[/bold]")
        try:
            running = self.client.containers.list()
        except APIError as e:
            raise ContainerError(f"Could not list containers: {e}") from e

        if not running:
            console.print("   [dim]No running containers found.[/dim]")
            return

        console.print(f"   [dim]Stopping {len(running)} running container(s): "
                      f"{', '.join(c.name for c in running)}[/dim]")
        try:
            for container in running:
                container.stop()
            for container in running:
                container.remove()
        except APIError as e:
            raise ContainerError(f"Failed to clear running containers: {e}") from e

    def remove_leftover(self, name: str):
        """Drops a stopped or half-created container still holding the managed name."""
        try:
            leftover = self.client.containers.get(name)
        except NotFound:
            return
        except APIError as e:
            raise ContainerError(f"Could not inspect container '{name}': {e}") from e

        console.print(f"   [dim]Removing leftover container '{name}' ({leftover.status})...[/dim]")
        try:
            leftover.remove(force=True)
        except APIError as e:
            raise ContainerError(f"Could not remove leftover container '{name}': {e}") from e

    def pull(self, image: str):
        console.print(f"[bold]==> Pulling Docker image: {image}[/bold]")
        try:
            self.client.images.pull(image)
        except ImageNotFound as e:
            raise ContainerError(f"Image {image} not found in registry: {e}") from e
        except APIError as e:
            raise ContainerError(f"Could not pull {image}: {e}") from e

    def start(self, spec: ContainerSpec) -> Container:
        console.print(f"[bold]==> Running Docker container on port {spec.host_port}...[/bold]")
        try:
            container = self.client.containers.run(
                spec.image,
                name=spec.name,
                ports={f"{spec.container_port}/tcp": spec.host_port},
                restart_policy={"Name": spec.restart_policy},
                detach=True,
            )
        except APIError as e:
            raise ContainerError(f"Could not start container '{spec.name}': {e}") from e

        console.print(f"[bold green]✅ Container '{spec.name}' running {spec.image} on port {spec.host_port}[/bold green]")
        return container
