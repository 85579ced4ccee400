from __future__ import annotations

import importlib

import pytest


def test_console_entrypoint_exposes_app() -> None:
    pytest.importorskip("typer")

    module = importlib.import_module("mc_navigator.main")

    assert hasattr(module, "app")
    assert module.app is not None


def test_structure_show_exits_nonzero_for_unknown_agent(tmp_path) -> None:
    pytest.importorskip("typer")
    from typer.testing import CliRunner

    module = importlib.import_module("mc_navigator.main")
    result = CliRunner().invoke(module.app, ["structure-show", "ghost", "--structure-dir", str(tmp_path)])

    assert result.exit_code == 1


def test_simulate_rejects_unknown_scenario() -> None:
    pytest.importorskip("typer")
    from typer.testing import CliRunner

    module = importlib.import_module("mc_navigator.main")
    result = CliRunner().invoke(module.app, ["simulate", "volcano"])

    assert result.exit_code != 0
