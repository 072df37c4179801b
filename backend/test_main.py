from __future__ import annotations

from typing import Any

import pytest

import main


def test_run_serves_app_with_a_single_worker(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[tuple[tuple[Any, ...], dict[str, Any]]] = []
    monkeypatch.setattr(main.uvicorn, "run", lambda *args, **kwargs: calls.append((args, kwargs)))
    monkeypatch.delenv("JUKEBOX_HOST", raising=False)
    monkeypatch.delenv("JUKEBOX_PORT", raising=False)

    main.run()

    assert calls == [(("main:app",), {"host": "127.0.0.1", "port": 8000, "workers": 1})]


def test_run_reads_host_and_port_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[dict[str, Any]] = []
    monkeypatch.setattr(main.uvicorn, "run", lambda *args, **kwargs: calls.append(kwargs))
    monkeypatch.setenv("JUKEBOX_HOST", "0.0.0.0")
    monkeypatch.setenv("JUKEBOX_PORT", "9100")

    main.run()

    assert calls[0]["host"] == "0.0.0.0"
    assert calls[0]["port"] == 9100
