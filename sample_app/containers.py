"""Docker CLI wrapper used by the deployment controller."""
from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Protocol, Sequence

logger = logging.getLogger("sampleapp.containers")


class CommandError(RuntimeError):
    """Raised when a command cannot be executed at all."""


@dataclass
class CommandResult:
    """Result of an executed command."""

    command: Sequence[str]
    exit_status: int
    stdout: str
    stderr: str


class CommandRunner(Protocol):
    def run(self, args: Sequence[str], timeout: int = 60) -> CommandResult:
        ...


class LocalCommandRunner:
    """Executes commands on the local machine."""

    def run(self, args: Sequence[str], timeout: int = 60) -> CommandResult:
        command = [str(part) for part in args]
        if not command:
            raise CommandError("Command must not be empty")

        logger.debug("-> %s", " ".join(shlex.quote(part) for part in command))
        try:
            completed = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=timeout,
                check=False,
            )
        except FileNotFoundError as exc:
            raise CommandError(f"Executable not found: {command[0]}") from exc
        except subprocess.TimeoutExpired as exc:
            raise CommandError(f"Command '{command[0]}' timed out after {timeout} seconds") from exc
        except OSError as exc:
            raise CommandError(f"Failed to execute '{command[0]}': {exc}") from exc

        return CommandResult(
            command=tuple(command),
            exit_status=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )


class ContainerRuntimeError(RuntimeError):
    """Raised when a docker command fails."""

    def __init__(self, message: str, result: CommandResult | None = None) -> None:
        super().__init__(message)
        self.result = result

    def __str__(self) -> str:
        base = super().__str__()
        if self.result is not None:
            detail = (self.result.stderr or self.result.stdout).strip()
            if detail:
                return f"{base}: {detail}"
        return base


class DockerRuntime:
    """High level interface for the container operations a deployment needs."""

    def __init__(self, runner: CommandRunner, *, executable: str = "docker") -> None:
        self._runner = runner
        self._docker = executable

    def ping(self) -> CommandResult:
        return self._execute(["info"], "reach the Docker daemon")

    def load_image(self, archive: Path) -> CommandResult:
        return self._execute(
            ["load", "-i", str(archive)],
            f"load image archive '{archive}'",
            timeout=600,
        )

    def build_image(self, image_ref: str, *, context: Path, target: Optional[str] = None) -> CommandResult:
        command = ["build"]
        if target:
            command.extend(["--target", target])
        command.extend(["-t", image_ref, str(context)])
        return self._execute(command, f"build image '{image_ref}'", timeout=1800)

    def tag_image(self, source: str, target: str) -> CommandResult:
        return self._execute(["tag", source, target], f"tag image '{source}' as '{target}'")

    def list_container_names(self) -> List[str]:
        result = self._execute(["ps", "-a", "--format", "{{.Names}}"], "list containers")
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def container_exists(self, name: str) -> bool:
        return name in self.list_container_names()

    def stop_container(self, name: str) -> CommandResult:
        return self._execute(["stop", name], f"stop container '{name}'")

    def remove_container(self, name: str) -> CommandResult:
        return self._execute(["rm", name], f"remove container '{name}'")

    def discard_container(self, name: str) -> bool:
        """Stop and remove ``name`` if it exists; return whether it was present.

        Stop and remove failures are logged rather than raised, matching
        ``docker stop ... || true`` cleanup semantics.
        """

        if not self.container_exists(name):
            return False
        for action in (self.stop_container, self.remove_container):
            try:
                action(name)
            except ContainerRuntimeError as exc:
                logger.warning("%s", exc)
        return True

    def run_container(
        self,
        image_ref: str,
        *,
        name: str,
        ports: Mapping[int, int],
        environment: Mapping[str, str] | None = None,
        restart_policy: Optional[str] = "unless-stopped",
    ) -> str:
        """Start a detached container and return its id."""

        command = ["run", "-d", "--name", name]
        for host_port, container_port in ports.items():
            command.extend(["-p", f"{host_port}:{container_port}"])
        env: Dict[str, str] = dict(environment or {})
        for key, value in env.items():
            command.extend(["-e", f"{key}={value}"])
        if restart_policy:
            command.extend(["--restart", restart_policy])
        command.append(image_ref)

        result = self._execute(command, f"start container '{name}'")
        container_id = result.stdout.strip().splitlines()
        return container_id[-1].strip() if container_id else name

    def container_status(self, name: str) -> str:
        result = self._execute(
            [
                "ps",
                "--filter",
                f"name={name}",
                "--format",
                "table {{.Names}}\t{{.Status}}\t{{.Ports}}",
            ],
            f"inspect container '{name}'",
        )
        return result.stdout.rstrip()

    def _execute(self, args: List[str], action: str, *, timeout: int = 60) -> CommandResult:
        command = [self._docker, *args]
        try:
            result = self._runner.run(command, timeout=timeout)
        except CommandError as exc:
            raise ContainerRuntimeError(f"Failed to {action}: {exc}") from exc

        if result.exit_status != 0:
            raise ContainerRuntimeError(f"Failed to {action}", result)
        return result


__all__ = [
    "CommandError",
    "CommandResult",
    "CommandRunner",
    "ContainerRuntimeError",
    "DockerRuntime",
    "LocalCommandRunner",
]
