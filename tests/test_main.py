"""Tests for configuration loading and the CLI entry point wiring."""

import runpy
from pathlib import Path
from types import SimpleNamespace
from typing import Any

import pytest
from PIL import Image

import media_annotator.main as m
from media_annotator.errors import ConfigurationError, StoreError


class _MemoryStore:
    """Metadata store stand-in shared by every job of one CLI run."""

    fields: dict[str, dict[str, str]] = {}
    unreadable: set[str] = set()

    def read(self, path: Path) -> dict[str, str]:
        if path.name in self.unreadable:
            msg = f"cannot read metadata of {path.name}"
            raise StoreError(msg)
        return dict(self.fields.get(path.name, {}))

    def is_annotated(self, fields: dict[str, str]) -> bool:
        return bool(fields.get("Comment"))

    def write(self, path: Path, description: str) -> None:
        self.fields[path.name] = {"Comment": description}


class _TextAgent:
    def run_sync(self, items: list[object], model_settings: Any) -> SimpleNamespace:  # noqa: ANN401
        return SimpleNamespace(output="A small green square")


@pytest.fixture
def media_dir(tmp_path: Path) -> Path:
    folder = tmp_path / "images"
    folder.mkdir()
    for name in ("a.jpg", "b.png", "c.gif", "d.jpg"):
        Image.new("RGB", (8, 8), (0, 200, 0)).save(folder / name)
    (folder / "readme.txt").write_text("not media")
    return folder


@pytest.fixture
def wired(monkeypatch: pytest.MonkeyPatch) -> type[_MemoryStore]:
    store = type("Store", (_MemoryStore,), {"fields": {}, "unreadable": set()})
    monkeypatch.setattr(m, "MetadataStore", store)
    monkeypatch.setattr(m, "create_agent", lambda *a, **kw: _TextAgent())
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    return store


def _run(directory: Path, **kwargs: Any) -> None:  # noqa: ANN401
    m.annotate(
        directory,
        file_log_level="OFF",
        console_log_level="OFF",
        **kwargs,
    )


def test_load_api_key_requires_value(monkeypatch: pytest.MonkeyPatch) -> None:
    """A missing or blank credential is a configuration error."""
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(ConfigurationError, match="OPENAI_API_KEY"):
        m.load_api_key()

    monkeypatch.setenv("OPENAI_API_KEY", "   ")
    with pytest.raises(ConfigurationError):
        m.load_api_key()

    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    assert m.load_api_key() == "sk-test"


def test_missing_credential_aborts_before_processing(
    monkeypatch: pytest.MonkeyPatch,
    media_dir: Path,
    wired: type[_MemoryStore],
) -> None:
    """Without a key the process exits 1 and no file is touched."""
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    with pytest.raises(SystemExit) as excinfo:
        _run(media_dir)

    assert excinfo.value.code == 1
    assert wired.fields == {}


def test_batch_with_failures_completes_normally(media_dir: Path, wired: type[_MemoryStore]) -> None:
    """A failing file is logged but the run returns normally (exit status 0)."""
    wired.fields["a.jpg"] = {"Comment": "already described"}
    wired.unreadable.add("c.gif")

    _run(media_dir, concurrency=2)

    assert wired.fields["a.jpg"] == {"Comment": "already described"}
    assert wired.fields["b.png"] == {"Comment": "A small green square"}
    assert wired.fields["d.jpg"] == {"Comment": "A small green square"}
    assert "c.gif" not in wired.fields
    assert "readme.txt" not in wired.fields


def test_strict_mode_exits_non_zero_on_failure(media_dir: Path, wired: type[_MemoryStore]) -> None:
    """--strict turns any failed file into exit status 1."""
    wired.unreadable.add("c.gif")

    with pytest.raises(SystemExit) as excinfo:
        _run(media_dir, strict=True)

    assert excinfo.value.code == 1
    assert len(wired.fields) == 3


def test_package_runs_as_module(monkeypatch: pytest.MonkeyPatch) -> None:
    """`python -m media_annotator` dispatches to the cyclopts app."""
    calls: list[str] = []
    monkeypatch.setattr(m, "app", lambda: calls.append("app"))

    runpy.run_module("media_annotator", run_name="__main__", alter_sys=False)

    assert calls == ["app"]
