from __future__ import annotations

import runpy
from pathlib import Path

import pimonitor_app.__main__ as app_main


def test_main_defaults_to_serve(monkeypatch) -> None:
    calls: list[list[str]] = []
    monkeypatch.setattr(app_main, "_cli_main", lambda argv=None: calls.append(list(argv or [])) or 0)

    rc = app_main.main([])
    assert rc == 0
    assert calls == [["serve"]]


def test_main_passes_through_args(monkeypatch) -> None:
    calls: list[list[str]] = []
    monkeypatch.setattr(app_main, "_cli_main", lambda argv=None: calls.append(list(argv or [])) or 0)

    rc = app_main.main(["snapshot", "--format", "pretty"])
    assert rc == 0
    assert calls == [["snapshot", "--format", "pretty"]]


def test_main_module_runpath_without_package_context() -> None:
    main_path = Path(__file__).resolve().parents[1] / "apps" / "server" / "pimonitor_app" / "__main__.py"
    result = runpy.run_path(str(main_path))
    assert "main" in result
