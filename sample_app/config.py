"""Configuration for the sample service and its deployment controller."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml

SERVICE_NAME = "buildkite-sample-app"
ENVIRONMENTS = ("staging", "production")

_DEFAULT_PORTS: Dict[str, int] = {"staging": 3001, "production": 3000}


def _env_int(value: Optional[str], default: int, label: str) -> int:
    if value is None or not value.strip():
        return default
    try:
        return int(value.strip())
    except ValueError as exc:
        raise ValueError(f"{label} must be a whole number, got {value!r}") from exc


@dataclass(frozen=True)
class ServiceSettings:
    """Runtime settings of the HTTP service."""

    environment: str = "development"
    version: str = "1.0.0"
    host: str = "0.0.0.0"
    port: int = 3000
    service_name: str = SERVICE_NAME

    @staticmethod
    def from_env(environ: Mapping[str, str] | None = None) -> "ServiceSettings":
        env = os.environ if environ is None else environ
        return ServiceSettings(
            environment=(env.get("NODE_ENV") or "development").strip() or "development",
            version=(env.get("APP_VERSION") or "1.0.0").strip() or "1.0.0",
            host=(env.get("HOST") or "0.0.0.0").strip() or "0.0.0.0",
            port=_env_int(env.get("PORT"), 3000, "PORT"),
        )


@dataclass(frozen=True)
class DeploySettings:
    """Settings consumed by the deployment controller."""

    app_name: str = SERVICE_NAME
    container_prefix: str = "buildkite-sample"
    container_port: int = 3000
    health_host: str = "localhost"
    health_path: str = "/health"
    max_attempts: int = 30
    interval_seconds: float = 2.0
    request_timeout: float = 5.0
    image_artifact: Path = Path("image.tar.gz")
    build_target: str = "production"
    build_context: Path = Path(".")
    image_tag: str = "latest"
    default_ports: Dict[str, int] = field(default_factory=lambda: dict(_DEFAULT_PORTS))

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.interval_seconds < 0:
            raise ValueError("interval_seconds must not be negative")
        if self.request_timeout <= 0:
            raise ValueError("request_timeout must be greater than zero")
        if not self.app_name.strip():
            raise ValueError("app_name must not be empty")
        if not self.container_prefix.strip():
            raise ValueError("container_prefix must not be empty")

    def default_port(self, environment: str) -> Optional[int]:
        return self.default_ports.get(environment)

    @staticmethod
    def from_dict(
        data: Mapping[str, object],
        *,
        base_path: Path | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> "DeploySettings":
        """Build settings from raw YAML data, falling back to defaults."""
        env = os.environ if environ is None else environ
        defaults = DeploySettings()

        def _path(key: str, default: Path) -> Path:
            raw = data.get(key)
            if raw is None:
                return default
            candidate = Path(str(raw)).expanduser()
            if not candidate.is_absolute() and base_path is not None:
                candidate = base_path / candidate
            return candidate

        health = data.get("health") or {}
        if not isinstance(health, Mapping):
            raise ValueError("'health' must be a mapping")

        ports_raw = data.get("environments") or {}
        if not isinstance(ports_raw, Mapping):
            raise ValueError("'environments' must be a mapping")
        ports = dict(defaults.default_ports)
        for name, entry in ports_raw.items():
            if name not in ENVIRONMENTS:
                raise ValueError(f"Unknown environment in configuration: {name}")
            port = entry.get("port") if isinstance(entry, Mapping) else entry
            try:
                ports[str(name)] = int(port)
            except (TypeError, ValueError) as exc:
                raise ValueError(f"Invalid port for environment {name}: {port!r}") from exc

        tag = env.get("BUILDKITE_COMMIT") or data.get("image_tag") or defaults.image_tag

        try:
            return DeploySettings(
                app_name=str(data.get("app_name", defaults.app_name)),
                container_prefix=str(data.get("container_prefix", defaults.container_prefix)),
                container_port=int(data.get("container_port", defaults.container_port)),
                health_host=str(health.get("host", defaults.health_host)),
                health_path=str(health.get("path", defaults.health_path)),
                max_attempts=int(health.get("max_attempts", defaults.max_attempts)),
                interval_seconds=float(health.get("interval_seconds", defaults.interval_seconds)),
                request_timeout=float(health.get("request_timeout", defaults.request_timeout)),
                image_artifact=_path("image_artifact", defaults.image_artifact),
                build_target=str(data.get("build_target", defaults.build_target)),
                build_context=_path("build_context", defaults.build_context),
                image_tag=str(tag).strip() or defaults.image_tag,
                default_ports=ports,
            )
        except TypeError as exc:
            # Null YAML values such as `max_attempts: ~` end up here.
            raise ValueError(f"Invalid deployment setting: {exc}") from exc


def resolve_config_path(env_value: Optional[str]) -> Path:
    """Resolve the path to the deployment configuration file."""
    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    return (Path(__file__).resolve().parent.parent / "config" / "deploy.yaml").resolve(strict=False)


def load_deploy_settings(
    config_path: Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> DeploySettings:
    """Load deployment settings from YAML.

    An explicitly requested file must exist. When no path is given the
    ``DEPLOY_CONFIG`` variable or the bundled ``config/deploy.yaml`` is used,
    and a missing default file simply yields the built-in defaults.
    """
    env = os.environ if environ is None else environ
    explicit = config_path is not None or bool(env.get("DEPLOY_CONFIG"))
    path = config_path if config_path is not None else resolve_config_path(env.get("DEPLOY_CONFIG"))

    if not path.exists():
        if explicit:
            raise ValueError(f"Deployment configuration file not found: {path}")
        return DeploySettings.from_dict({}, environ=env)

    with path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}
    if not isinstance(raw, Mapping):
        raise ValueError("Deployment configuration must be a mapping at the top level")

    deploy_section = raw.get("deploy", raw)
    if not isinstance(deploy_section, Mapping):
        raise ValueError("'deploy' section must be a mapping")
    return DeploySettings.from_dict(deploy_section, base_path=path.parent, environ=env)


__all__ = [
    "ENVIRONMENTS",
    "SERVICE_NAME",
    "DeploySettings",
    "ServiceSettings",
    "load_deploy_settings",
    "resolve_config_path",
]
