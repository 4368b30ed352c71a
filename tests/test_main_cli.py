import json

import pytest

from main import _parse_args, main


def test_default_command_invokes_serve() -> None:
    args = _parse_args([])
    assert args.command == "serve"


def test_default_command_accepts_options_without_subcommand() -> None:
    args = _parse_args(["--host", "127.0.0.1", "--port", "8080"])
    assert args.command == "serve"
    assert args.host == "127.0.0.1"
    assert args.port == 8080


def test_deploy_accepts_positional_arguments() -> None:
    args = _parse_args(["deploy", "staging", "3001"])
    assert args.command == "deploy"
    assert args.environment == "staging"
    assert args.port == "3001"


def test_deploy_accepts_flags() -> None:
    args = _parse_args(["deploy", "--environment", "production", "--port", "3000"])
    assert args.environment == "production"
    assert args.port == "3000"


def test_deploy_positional_fills_missing_flag() -> None:
    args = _parse_args(["deploy", "-e", "production", "3000"])
    assert args.environment == "production"
    assert args.port == "3000"


def test_deploy_defaults_to_staging() -> None:
    args = _parse_args(["deploy"])
    assert args.environment == "staging"
    assert args.port is None


def test_deploy_help_exits_cleanly(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as excinfo:
        _parse_args(["deploy", "--help"])
    assert excinfo.value.code == 0
    assert "--environment" in capsys.readouterr().out


def test_deploy_with_invalid_environment_exits_non_zero(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("DEPLOY_CONFIG", raising=False)
    with pytest.raises(SystemExit) as excinfo:
        main(["deploy", "qa", "3001"])
    assert excinfo.value.code not in (0, None)
    assert "Invalid environment: qa" in str(excinfo.value.code)


def test_deploy_report_json_is_written_on_failure(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("DEPLOY_CONFIG", raising=False)
    report = tmp_path / "out" / "deploy.json"

    with pytest.raises(SystemExit):
        main(["deploy", "qa", "3001", "--report-json", str(report)])

    payload = json.loads(report.read_text(encoding="utf-8"))
    assert payload["state"] == "aborted"
    assert payload["environment"] == "qa"
    assert payload["report"] is None
    assert any("Invalid environment: qa" in entry["message"] for entry in payload["messages"])


def test_null_config_value_exits_with_message(tmp_path) -> None:
    config = tmp_path / "deploy.yaml"
    config.write_text("health:\n  max_attempts: ~\n", encoding="utf-8")

    with pytest.raises(SystemExit) as excinfo:
        main(["deploy", "staging", "--config", str(config)])
    assert "Invalid deployment configuration" in str(excinfo.value.code)
