"""Buildkite sample service and its deployment tooling."""

from __future__ import annotations

from typing import Any

from .config import DeploySettings, ServiceSettings, load_deploy_settings
from .users import UserStore


def create_app(*args: Any, **kwargs: Any):
    """Factory function that returns the HTTP application."""

    from .service import create_app as _create_app

    return _create_app(*args, **kwargs)


__all__ = [
    "DeploySettings",
    "ServiceSettings",
    "UserStore",
    "create_app",
    "load_deploy_settings",
]
