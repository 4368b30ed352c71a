"""Command-line interface for the Buildkite sample service."""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Sequence

from sample_app.config import ENVIRONMENTS, ServiceSettings, load_deploy_settings

logger = logging.getLogger("sampleapp.main")

_DEPLOY_EPILOG = """\
Examples:
  %(prog)s staging 3001
  %(prog)s --environment production --port 3000
"""


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Buildkite sample application utilities")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP service")
    serve_parser.add_argument(
        "--host",
        default=None,
        help="Bind address (default: HOST or 0.0.0.0)",
    )
    serve_parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to listen on (default: PORT or 3000)",
    )

    deploy_parser = subparsers.add_parser(
        "deploy",
        help="Deploy the application container and verify its health",
        description="Deploy the Buildkite sample application",
        epilog=_DEPLOY_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    deploy_parser.add_argument(
        "positional_environment",
        nargs="?",
        default=None,
        metavar="ENVIRONMENT",
        help=f"Environment to deploy to ({'|'.join(ENVIRONMENTS)})",
    )
    deploy_parser.add_argument(
        "positional_port",
        nargs="?",
        default=None,
        metavar="PORT",
        help="Port to expose the application on",
    )
    deploy_parser.add_argument(
        "-e",
        "--environment",
        default=None,
        help=f"Environment to deploy to ({'|'.join(ENVIRONMENTS)})",
    )
    deploy_parser.add_argument(
        "-p",
        "--port",
        default=None,
        help="Port to expose the application on",
    )
    deploy_parser.add_argument(
        "--config",
        default=None,
        help="Path to the deployment YAML file (default: DEPLOY_CONFIG or config/deploy.yaml)",
    )
    deploy_parser.add_argument(
        "--report-json",
        default=None,
        metavar="PATH",
        help="Write the deployment attempt, including its event log, to PATH as JSON",
    )

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "deploy"}

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in known_commands:
            args_list = ["serve", *args_list]

    args = parser.parse_args(args_list)
    if args.command == "deploy":
        # Positionals fill whichever of environment/port was not given as a flag.
        positionals = [
            value for value in (args.positional_environment, args.positional_port) if value is not None
        ]
        if args.environment is None and positionals:
            args.environment = positionals.pop(0)
        if args.port is None and positionals:
            args.port = positionals.pop(0)
        if positionals:
            deploy_parser.error(f"Unknown argument: {positionals[0]}")
        if args.environment is None:
            args.environment = "staging"
    return args


def _serve(*, host: str | None, port: int | None) -> None:
    from sample_app.service import create_app
    import uvicorn

    settings = ServiceSettings.from_env()
    bind_host = host or settings.host
    bind_port = port if port is not None else settings.port

    logger.info("Server running on port %s", bind_port)
    logger.info("Health check: http://localhost:%s/health", bind_port)

    app = create_app(settings=settings)
    uvicorn.run(app, host=bind_host, port=bind_port, log_level="info")


def _write_attempt_report(path: Path, payload: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
    logger.info("Deployment report written to %s", path)


def _deploy(
    *,
    environment: str,
    port: str | None,
    config: str | None,
    report_json: str | None = None,
) -> None:
    from sample_app.containers import DockerRuntime, LocalCommandRunner
    from sample_app.deploy import DeploymentController, DeploymentError

    try:
        settings = load_deploy_settings(Path(config) if config else None)
    except ValueError as exc:
        raise SystemExit(f"Invalid deployment configuration: {exc}") from exc

    logger.info("Starting deployment of %s to %s", settings.app_name, environment)
    controller = DeploymentController(
        environment,
        port,
        settings=settings,
        runtime=DockerRuntime(LocalCommandRunner()),
    )
    report_path = Path(report_json) if report_json else None
    try:
        attempt = controller.run()
    except DeploymentError as exc:
        if report_path is not None:
            _write_attempt_report(report_path, controller.attempt.to_dict())
        raise SystemExit(f"Deployment failed: {exc}") from exc

    if report_path is not None:
        _write_attempt_report(report_path, attempt.to_dict())

    if attempt.report is not None:
        print()
        for line in attempt.report.lines():
            print(line)
        print()
    print("Deployment completed successfully!")


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point for CLI usage."""

    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    args = _parse_args(argv)

    if args.command == "serve":
        _serve(host=args.host, port=args.port)
    elif args.command == "deploy":
        _deploy(
            environment=args.environment,
            port=args.port,
            config=args.config,
            report_json=args.report_json,
        )


if __name__ == "__main__":
    main()
