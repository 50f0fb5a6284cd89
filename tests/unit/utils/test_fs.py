"""Tests for atomic file replacement."""

from __future__ import annotations

from pathlib import Path

import pytest

from craft_reconciler.utils import fs
from craft_reconciler.utils.fs import atomic_write


def test_atomic_write_creates_and_replaces(tmp_path: Path) -> None:
    target = tmp_path / "catalog.yaml"

    atomic_write(target, "first\n")
    atomic_write(target, b"second\n")

    assert target.read_text(encoding="utf-8") == "second\n"
    assert [path.name for path in tmp_path.iterdir()] == ["catalog.yaml"]


def test_create_parents_is_opt_in(tmp_path: Path) -> None:
    target = tmp_path / "a" / "b" / "catalog.yaml"

    with pytest.raises(FileNotFoundError):
        atomic_write(target, "x")

    atomic_write(target, "x", create_parents=True)
    assert target.read_text(encoding="utf-8") == "x"


def test_failed_replace_keeps_previous_content_and_removes_temp(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    target = tmp_path / "catalog.yaml"
    target.write_text("original", encoding="utf-8")

    def _refuse(src: object, dst: object) -> None:
        raise PermissionError("read-only volume")

    monkeypatch.setattr(fs.os, "replace", _refuse)

    with pytest.raises(PermissionError):
        atomic_write(target, "replacement")

    assert target.read_text(encoding="utf-8") == "original"
    assert [path.name for path in tmp_path.iterdir()] == ["catalog.yaml"]
