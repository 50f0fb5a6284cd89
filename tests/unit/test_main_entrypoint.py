"""Exit-code routing for the ``craftrec`` entrypoint."""

from __future__ import annotations

from pathlib import Path

import pytest

from craft_reconciler.backend.base import FatalBackendError
from craft_reconciler.config.loader import ConfigLoadError
from craft_reconciler.main import ExitCode, cli_entrypoint
from craft_reconciler.ui import cli


def _config(tmp_path: Path, extra: str = "") -> Path:
    path = tmp_path / "reconciler.toml"
    path.write_text(
        f'[paths]\ncatalog = "catalog.yaml"\n\n[observability]\nlog_dir = "logs"\n{extra}',
        encoding="utf-8",
    )
    return path


def test_success_returns_zero(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert cli_entrypoint(["config", "--json", "--config", str(_config(tmp_path))]) == 0
    capsys.readouterr()


def test_missing_command_is_a_usage_error(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli_entrypoint([]) == ExitCode.CONFIG_ERROR
    assert "usage: craftrec" in capsys.readouterr().err


def test_missing_config_file_is_a_config_error(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    assert cli_entrypoint(["config", "--config", str(tmp_path / "absent.toml")]) == 2
    assert "config file not found" in capsys.readouterr().err


def test_unusable_backend_is_a_backend_error(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    path = _config(tmp_path, '\n[backend]\nfactory = "no_such_driver_pkg:build"\n')

    assert cli_entrypoint(["run", "--once", "--config", str(path)]) == ExitCode.BACKEND_ERROR
    assert capsys.readouterr().err.startswith("fatal: no usable crafting network: ")


def test_corrupt_catalog_is_a_backend_error(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    path = _config(tmp_path)
    (tmp_path / "catalog.yaml").write_text("recipes: [unclosed", encoding="utf-8")

    assert cli_entrypoint(["catalog", "list", "--config", str(path)]) == 3
    assert "invalid YAML" in capsys.readouterr().err


def test_unexpected_errors_print_a_traceback(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    def _explode(argv: object) -> int:
        raise RuntimeError("unexpected")

    monkeypatch.setattr(cli, "run_cli", _explode)

    assert cli_entrypoint(["status"]) == ExitCode.INTERNAL_ERROR
    err = capsys.readouterr().err
    assert "Traceback" in err
    assert "RuntimeError: unexpected" in err


@pytest.mark.parametrize(
    ("cause", "expected"),
    [
        (ConfigLoadError("bad override"), ExitCode.CONFIG_ERROR),
        (FatalBackendError("inventory snapshot failed: gone"), ExitCode.BACKEND_ERROR),
        (ValueError("plain"), ExitCode.INTERNAL_ERROR),
    ],
)
def test_exception_chain_is_searched_for_known_causes(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
    cause: Exception,
    expected: ExitCode,
) -> None:
    def _raise(argv: object) -> int:
        raise RuntimeError("command failed") from cause

    monkeypatch.setattr(cli, "run_cli", _raise)

    assert cli_entrypoint(["status"]) == expected
    capsys.readouterr()


@pytest.mark.parametrize(
    ("raised", "expected"),
    [(KeyboardInterrupt(), 0), (SystemExit(None), 0), (SystemExit(3), 3), (SystemExit(99), 4)],
)
def test_interrupts_and_exit_codes_are_normalized(
    monkeypatch: pytest.MonkeyPatch, raised: BaseException, expected: int
) -> None:
    def _raise(argv: object) -> int:
        raise raised

    monkeypatch.setattr(cli, "run_cli", _raise)

    assert cli_entrypoint(["status"]) == expected
