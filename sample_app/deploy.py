"""Container deployment with health verification and rollback of failed attempts."""
from __future__ import annotations

import logging
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Literal, Optional

from .config import ENVIRONMENTS, DeploySettings
from .containers import ContainerRuntimeError, DockerRuntime
from .health import HealthCheckResult, HealthPoller
from .models import isoformat, utcnow

logger = logging.getLogger("sampleapp.deploy")

LogStream = Literal["info", "warning", "error"]

_LOG_LEVELS = {"info": logging.INFO, "warning": logging.WARNING, "error": logging.ERROR}


class DeploymentState(str, Enum):
    VALIDATING = "validating"
    PROVISIONING = "provisioning"
    STARTING = "starting"
    HEALTH_CHECKING = "health_checking"
    SUCCEEDED = "succeeded"
    ROLLED_BACK = "rolled_back"
    ABORTED = "aborted"


class HealthStatus(str, Enum):
    PENDING = "pending"
    HEALTHY = "healthy"
    FAILED = "failed"


class DeploymentError(RuntimeError):
    """Base class for deployment failures."""

    def __init__(self, message: str, attempt: "DeploymentAttempt | None" = None) -> None:
        super().__init__(message)
        self.attempt = attempt


class DeploymentConfigError(DeploymentError):
    """Raised when the requested target is invalid."""


class DeploymentAbortedError(DeploymentError):
    """Raised when infrastructure fails before a container was started."""


class DeploymentFailedError(DeploymentError):
    """Raised when the new container could not be started or verified."""


class DeploymentRolledBackError(DeploymentError):
    """Raised after a failed container was removed."""


@dataclass(frozen=True)
class DeploymentTarget:
    """Where and what to deploy."""

    environment: str
    port: int
    image_ref: str

    @staticmethod
    def from_args(
        environment: Optional[str],
        port: Optional[int | str],
        settings: DeploySettings,
    ) -> "DeploymentTarget":
        cleaned = (environment or "").strip()
        if cleaned not in ENVIRONMENTS:
            raise DeploymentConfigError(
                f"Invalid environment: {cleaned or '<empty>'}. Use 'staging' or 'production'"
            )

        resolved_port: Optional[int | str] = port
        if resolved_port is None or (isinstance(resolved_port, str) and not resolved_port.strip()):
            resolved_port = settings.default_port(cleaned)
        if resolved_port is None:
            raise DeploymentConfigError(f"No port given and no default port configured for {cleaned}")
        try:
            port_number = int(resolved_port)
        except (TypeError, ValueError) as exc:
            raise DeploymentConfigError(f"Invalid port: {resolved_port}") from exc
        if not 1 <= port_number <= 65535:
            raise DeploymentConfigError(f"Invalid port: {port_number}. Use a value between 1 and 65535")

        return DeploymentTarget(
            environment=cleaned,
            port=port_number,
            image_ref=f"{settings.app_name}:{settings.image_tag}",
        )


@dataclass
class DeploymentLogEntry:
    """A single event recorded during a deployment attempt."""

    sequence: int
    timestamp: datetime
    stream: LogStream
    message: str

    def to_dict(self) -> Dict[str, object]:
        return {
            "sequence": self.sequence,
            "timestamp": isoformat(self.timestamp),
            "stream": self.stream,
            "message": self.message,
        }


@dataclass
class DeploymentReport:
    """Summary printed after a successful deployment."""

    container_name: str
    app_url: str
    health_url: str
    users_url: str
    container_status: str

    def lines(self) -> List[str]:
        lines = [
            f"Application URL: {self.app_url}",
            f"Health Check: {self.health_url}",
            f"Users API: {self.users_url}",
        ]
        if self.container_status:
            lines.extend(["", "Container details:", self.container_status])
        lines.extend(
            [
                "",
                "To view logs, run:",
                f"  docker logs -f {self.container_name}",
                "To stop the application, run:",
                f"  docker stop {self.container_name}",
            ]
        )
        return lines


@dataclass
class DeploymentAttempt:
    """Tracks one run of the controller from validation to its terminal state."""

    id: str
    requested_environment: Optional[str]
    requested_port: Optional[int | str]
    created_at: datetime
    updated_at: datetime
    target: Optional[DeploymentTarget] = None
    container_name: Optional[str] = None
    container_id: Optional[str] = None
    state: DeploymentState = DeploymentState.VALIDATING
    health_status: HealthStatus = HealthStatus.PENDING
    health_attempts: int = 0
    error: Optional[str] = None
    report: Optional[DeploymentReport] = None
    messages: List[DeploymentLogEntry] = field(default_factory=list)
    _next_sequence: int = field(default=1, init=False, repr=False)

    def transition(self, state: DeploymentState) -> None:
        self.state = state
        self.updated_at = utcnow()

    def add_message(self, stream: LogStream, message: str) -> DeploymentLogEntry:
        entry = DeploymentLogEntry(
            sequence=self._next_sequence,
            timestamp=utcnow(),
            stream=stream,
            message=message,
        )
        self._next_sequence += 1
        self.messages.append(entry)
        self.updated_at = entry.timestamp
        logger.log(_LOG_LEVELS[stream], "%s", message)
        return entry

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "environment": self.target.environment if self.target else self.requested_environment,
            "port": self.target.port if self.target else self.requested_port,
            "image_ref": self.target.image_ref if self.target else None,
            "container_name": self.container_name,
            "container_id": self.container_id,
            "state": self.state.value,
            "health_status": self.health_status.value,
            "health_attempts": self.health_attempts,
            "error": self.error,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
            "report": asdict(self.report) if self.report is not None else None,
            "messages": [entry.to_dict() for entry in self.messages],
        }


class DeploymentController:
    """Runs validating -> provisioning -> starting -> health_checking.

    A run ends in ``succeeded``, ``aborted`` (nothing was started) or
    ``rolled_back`` (the new container was removed). Rollback never restores
    a previous instance.
    """

    def __init__(
        self,
        environment: Optional[str],
        port: Optional[int | str],
        *,
        settings: DeploySettings,
        runtime: DockerRuntime,
        poller: Optional[HealthPoller] = None,
    ) -> None:
        self._settings = settings
        self._runtime = runtime
        self._poller = poller or HealthPoller(
            max_attempts=settings.max_attempts,
            interval=settings.interval_seconds,
            timeout=settings.request_timeout,
        )
        now = utcnow()
        self.attempt = DeploymentAttempt(
            id=uuid.uuid4().hex,
            requested_environment=environment,
            requested_port=port,
            created_at=now,
            updated_at=now,
        )

    def run(self) -> DeploymentAttempt:
        self.validate()
        self.provision()
        try:
            self.start()
            self.check_health()
        except DeploymentFailedError as exc:
            self.rollback(str(exc))
            raise DeploymentRolledBackError(
                f"{exc}. Rollback completed. Please deploy a stable version.",
                self.attempt,
            ) from exc
        except Exception as exc:
            # A container may already be running; never leave it behind.
            reason = f"Unexpected error after start: {exc.__class__.__name__}: {exc}"
            self.rollback(reason)
            raise DeploymentRolledBackError(
                f"{reason}. Rollback completed. Please deploy a stable version.",
                self.attempt,
            ) from exc
        self.report()
        self.attempt.add_message("info", "Deployment completed successfully!")
        return self.attempt

    def validate(self) -> DeploymentTarget:
        attempt = self.attempt
        attempt.transition(DeploymentState.VALIDATING)
        try:
            target = DeploymentTarget.from_args(
                attempt.requested_environment,
                attempt.requested_port,
                self._settings,
            )
        except DeploymentConfigError as exc:
            self._abort(str(exc))
            exc.attempt = attempt
            raise
        attempt.target = target
        attempt.container_name = f"{self._settings.container_prefix}-{target.environment}"
        attempt.add_message("info", f"Deploying to {target.environment} environment")
        return target

    def provision(self) -> str:
        target = self._require_target()
        self.attempt.transition(DeploymentState.PROVISIONING)

        try:
            self._runtime.ping()
        except ContainerRuntimeError as exc:
            self._abort("Docker is not running. Please start Docker and try again.")
            raise DeploymentAbortedError(f"Docker is not running: {exc}", self.attempt) from exc
        self.attempt.add_message("info", "Docker is running")

        archive = self._settings.image_artifact
        latest_ref = f"{self._settings.app_name}:latest"
        try:
            if archive.is_file():
                self.attempt.add_message("info", f"Loading Docker image from artifact {archive}...")
                self._runtime.load_image(archive)
                self.attempt.add_message("info", "Image loaded successfully")
            else:
                self.attempt.add_message("info", f"Building Docker image {target.image_ref} locally...")
                self._runtime.build_image(
                    target.image_ref,
                    context=self._settings.build_context,
                    target=self._settings.build_target,
                )
                self.attempt.add_message("info", "Image built successfully")
            if target.image_ref != latest_ref:
                self._runtime.tag_image(target.image_ref, latest_ref)
        except ContainerRuntimeError as exc:
            self._abort(f"Image unavailable: {exc}")
            raise DeploymentAbortedError(f"Image unavailable: {exc}", self.attempt) from exc
        return target.image_ref

    def start(self) -> str:
        target = self._require_target()
        attempt = self.attempt
        name = attempt.container_name or f"{self._settings.container_prefix}-{target.environment}"
        attempt.transition(DeploymentState.STARTING)

        try:
            if self._runtime.discard_container(name):
                attempt.add_message("info", f"Cleaned up existing container: {name}")
            else:
                attempt.add_message("info", "No existing container found")
        except ContainerRuntimeError as exc:
            self._abort(f"Could not inspect existing containers: {exc}")
            raise DeploymentAbortedError(str(exc), attempt) from exc

        attempt.add_message("info", f"Starting new container: {name}")
        try:
            container_id = self._runtime.run_container(
                target.image_ref,
                name=name,
                ports={target.port: self._settings.container_port},
                environment={
                    "NODE_ENV": target.environment,
                    "PORT": str(self._settings.container_port),
                },
            )
        except ContainerRuntimeError as exc:
            raise DeploymentFailedError(str(exc), attempt) from exc
        attempt.container_id = container_id
        attempt.add_message("info", "Container started successfully")
        return container_id

    def check_health(self) -> HealthCheckResult:
        attempt = self.attempt
        url = self._url(self._settings.health_path)
        attempt.transition(DeploymentState.HEALTH_CHECKING)
        attempt.add_message(
            "info",
            f"Performing health check ({url}), up to {self._poller.max_attempts} attempts "
            f"{self._poller.interval} seconds apart...",
        )

        def _record(number: int, error: Optional[str]) -> None:
            attempt.health_attempts = number

        result = self._poller.wait_until_healthy(url, on_attempt=_record)
        attempt.health_attempts = result.attempts
        if not result.healthy:
            attempt.health_status = HealthStatus.FAILED
            raise DeploymentFailedError(
                f"Health check failed after {result.attempts} attempts",
                attempt,
            )
        attempt.health_status = HealthStatus.HEALTHY
        attempt.add_message("info", "Health check passed!")
        return result

    def rollback(self, reason: str) -> None:
        attempt = self.attempt
        attempt.error = reason
        if attempt.health_status is HealthStatus.PENDING:
            attempt.health_status = HealthStatus.FAILED
        attempt.add_message("warning", "Rolling back deployment...")
        if attempt.container_name:
            try:
                self._runtime.discard_container(attempt.container_name)
            except ContainerRuntimeError as exc:
                attempt.add_message("error", f"Rollback could not remove {attempt.container_name}: {exc}")
        attempt.transition(DeploymentState.ROLLED_BACK)
        attempt.add_message("error", "Rollback completed. Please deploy a stable version.")

    def report(self) -> DeploymentReport:
        attempt = self.attempt
        name = attempt.container_name or ""
        try:
            status = self._runtime.container_status(name)
        except ContainerRuntimeError as exc:
            attempt.add_message("warning", f"Could not read container status: {exc}")
            status = ""
        report = DeploymentReport(
            container_name=name,
            app_url=self._url(""),
            health_url=self._url(self._settings.health_path),
            users_url=self._url("/api/users"),
            container_status=status,
        )
        attempt.report = report
        attempt.transition(DeploymentState.SUCCEEDED)
        return report

    def _url(self, path: str) -> str:
        target = self._require_target()
        if path and not path.startswith("/"):
            path = "/" + path
        return f"http://{self._settings.health_host}:{target.port}{path}"

    def _require_target(self) -> DeploymentTarget:
        if self.attempt.target is None:
            raise DeploymentError("Deployment target has not been validated", self.attempt)
        return self.attempt.target

    def _abort(self, message: str) -> None:
        self.attempt.error = message
        self.attempt.transition(DeploymentState.ABORTED)
        self.attempt.add_message("error", message)


__all__ = [
    "DeploymentAbortedError",
    "DeploymentAttempt",
    "DeploymentConfigError",
    "DeploymentController",
    "DeploymentError",
    "DeploymentFailedError",
    "DeploymentLogEntry",
    "DeploymentReport",
    "DeploymentRolledBackError",
    "DeploymentState",
    "DeploymentTarget",
    "HealthStatus",
]
