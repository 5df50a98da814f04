from __future__ import annotations

import argparse
import json
import re
from pathlib import Path
from typing import Any, Dict, List

import pytest

from model_audit import cli
from model_audit.adapters.registry import AdapterRegistry


@pytest.fixture
def config_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, scripted_registry: AdapterRegistry) -> Path:
    monkeypatch.setattr("model_audit.adapters.registry.default_registry", lambda: scripted_registry)
    path = tmp_path / "config.yaml"
    path.write_text(
        f"""
storage:
  backend: json
  path: {tmp_path / "records"}
engine:
  prompt_delay_s: 0
  sample_delay_s: 0
  suite_pause_s: 0
  max_workers: 1
"""
    )
    return path


def _register(config_file: Path, capsys: pytest.CaptureFixture[str]) -> str:
    code = cli.main(
        ["--config", str(config_file), "register", "--name", "demo", "--provider", "scripted", "--version", "1"]
        + ["--model", "scripted-1", "--option", "temperature=0.2"]
    )
    assert code == 0
    return capsys.readouterr().out.strip()


def _run(config_file: Path, model_id: str, capsys: pytest.CaptureFixture[str]) -> str:
    code = cli.main(["--config", str(config_file), "run", model_id, "--suites", "censorship", "edge-cases"])
    captured = capsys.readouterr()
    assert code == 0
    assert "[completed]" in captured.out
    match = re.search(r"Started audit (\S+)", captured.err)
    assert match is not None
    return match.group(1)


def test_build_parser_parses_expected_arguments(tmp_path: Path) -> None:
    parser = cli.build_parser()
    args = parser.parse_args(["--store", str(tmp_path), "--verbose", "run", "m1", "--suites", "bias", "sidechannel"])

    assert args.command == "run"
    assert args.model_id == "m1"
    assert args.suites == ["bias", "sidechannel"]
    assert args.store == tmp_path
    assert args.verbose is True
    assert parser.parse_args(["run", "m1"]).suites == ["censorship", "bias", "sidechannel"]
    serve = parser.parse_args(["serve"])
    assert (serve.host, serve.port) == ("127.0.0.1", 3000)


def test_parse_options_decodes_json_values() -> None:
    assert cli._parse_options(["temperature=0.2", "name=gpt", "flags=[1, 2]"]) == {
        "temperature": 0.2,
        "name": "gpt",
        "flags": [1, 2],
    }
    with pytest.raises(argparse.ArgumentTypeError):
        cli._parse_options(["novalue"])


def test_log_level_selection() -> None:
    assert cli._log_level(debug=True, verbose=True) == "DEBUG"
    assert cli._log_level(debug=False, verbose=True) == "INFO"
    assert cli._log_level(debug=False, verbose=False) == "WARNING"


def test_register_run_export_compare(
    config_file: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    model_id = _register(config_file, capsys)
    assert (tmp_path / "records" / "models" / f"{model_id}.json").exists()

    first = _run(config_file, model_id, capsys)
    second = _run(config_file, model_id, capsys)

    output = tmp_path / "export.json"
    assert cli.main(["--config", str(config_file), "export", first, "--output", str(output)]) == 0
    document = json.loads(output.read_text(encoding="utf-8"))
    assert document["id"] == first
    assert document["test_suites"] == ["censorship", "edge-cases"]
    assert document["summary"]["errors"] == 0

    assert cli.main(["--config", str(config_file), "compare", first, second]) == 0
    captured = capsys.readouterr()
    assert "demo vs demo" in captured.out
    assert "pass_rate" in captured.out


def test_export_to_stdout_and_unsupported_format(
    config_file: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    model_id = _register(config_file, capsys)
    audit_id = _run(config_file, model_id, capsys)

    assert cli.main(["--config", str(config_file), "export", audit_id]) == 0
    assert json.loads(capsys.readouterr().out)["id"] == audit_id

    assert cli.main(["--config", str(config_file), "export", audit_id, "--format", "pdf"]) == 1
    assert "Unsupported format: pdf. Supported: json" in capsys.readouterr().err


def test_errors_exit_with_status_one(config_file: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["--config", str(config_file), "run", "missing"]) == 1
    assert "Model missing not found" in capsys.readouterr().err

    code = cli.main(["--config", str(config_file), "register", "--name", "x", "--provider", "mystery", "--version", "1"])
    assert code == 1
    assert "Unknown adapter provider: mystery" in capsys.readouterr().err

    model_id = _register(config_file, capsys)
    assert cli.main(["--config", str(config_file), "run", model_id, "--suites", "telepathy"]) == 1
    assert "Invalid test suites: telepathy" in capsys.readouterr().err


def test_malformed_option_is_usage_error(config_file: Path) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(
            ["--config", str(config_file), "register", "--name", "x", "--provider", "scripted", "--version", "1"]
            + ["--option", "broken"]
        )
    assert excinfo.value.code == 2


def test_default_store_is_working_directory(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)

    code = cli.main(["register", "--name", "llama", "--provider", "ollama", "--version", "2", "--model", "llama2"])

    assert code == 0
    assert len(list((tmp_path / cli.DEFAULT_STORE / "models").glob("*.json"))) == 1


def test_serve_hands_app_to_uvicorn(config_file: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    calls: List[Dict[str, Any]] = []

    def fake_run(app: Any, host: str, port: int) -> None:
        calls.append({"app": app, "host": host, "port": port})

    monkeypatch.setattr("uvicorn.run", fake_run)

    assert cli.main(["--config", str(config_file), "serve", "--port", "8123"]) == 0
    assert calls[0]["port"] == 8123
    assert calls[0]["host"] == "127.0.0.1"
    assert calls[0]["app"].title == "Model Audit API"
