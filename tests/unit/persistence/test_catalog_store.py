"""
craft-reconciler — unit tests for the YAML catalog store

File: tests/unit/persistence/test_catalog_store.py

Purpose
- Validate that only durable recipe fields survive a save/load cycle.
- Validate fatal handling of unreadable, corrupt, or inconsistent catalog files.
"""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from craft_reconciler.backend.base import FatalBackendError
from craft_reconciler.domain.models import FaultKind
from craft_reconciler.persistence.catalog_store import CatalogStore, CatalogStoreError


def test_missing_file_loads_as_empty_catalog(tmp_path: Path) -> None:
    store = CatalogStore(tmp_path / "catalog.yaml")

    assert not store.exists()
    assert store.load() == []


def test_save_keeps_only_durable_fields(tmp_path: Path, make_recipe) -> None:
    piston = make_recipe("minecraft:piston", wanted=64, label="Piston")
    piston.stored = 17
    piston.set_fault(FaultKind.JOB, "canceled")
    book = make_recipe("minecraft:enchanted_book", wanted=2, tag_label="Mending")
    store = CatalogStore(tmp_path / "nested" / "catalog.yaml")

    store.save([piston, book])

    raw = yaml.safe_load(store.path.read_text(encoding="utf-8"))
    assert raw == {
        "schema_version": 1,
        "recipes": [
            {"item": {"name": "minecraft:piston", "damage": 0}, "label": "Piston", "wanted": 64},
            {
                "item": {"name": "minecraft:enchanted_book", "damage": 0, "label": "Mending"},
                "label": "Mending",
                "wanted": 2,
            },
        ],
    }

    loaded = store.load()
    assert [(r.key, r.label, r.wanted, r.stored, r.error) for r in loaded] == [
        ("minecraft:piston:0", "Piston", 64, 0, None),
        ("minecraft:enchanted_book:0:Mending", "Mending", 2, 0, None),
    ]


def test_save_replaces_file_without_leaving_temp_files(tmp_path: Path, make_recipe) -> None:
    store = CatalogStore(tmp_path / "catalog.yaml")
    store.save([make_recipe("a:one")])
    store.save([make_recipe("a:two"), make_recipe("a:three")])

    assert [recipe.key for recipe in store.load()] == ["a:two:0", "a:three:0"]
    assert sorted(path.name for path in tmp_path.iterdir()) == ["catalog.yaml"]


def test_fractional_damage_is_floored_on_load(tmp_path: Path) -> None:
    path = tmp_path / "catalog.yaml"
    path.write_text(
        "recipes:\n  - item: {name: 'a:b', damage: 3.7}\n    label: Thing\n    wanted: 1\n",
        encoding="utf-8",
    )

    assert CatalogStore(path).load()[0].key == "a:b:3"


def test_empty_file_loads_as_empty_catalog(tmp_path: Path) -> None:
    path = tmp_path / "catalog.yaml"
    path.write_text("", encoding="utf-8")

    assert CatalogStore(path).load() == []


@pytest.mark.parametrize(
    ("text", "fragment"),
    [
        ("recipes: [unclosed", "invalid YAML"),
        ("- just\n- a list\n", "expected top-level mapping"),
        ("schema_version: 9\nrecipes: []\n", "unsupported schema_version 9"),
        ("recipes: {}\n", "recipes: expected list"),
        ("recipes:\n  - label: Missing item\n", "recipes[0].item: expected object"),
        (
            "recipes:\n  - item: {name: 'a:b'}\n    label: Thing\n    wanted: -4\n",
            "wanted",
        ),
        (
            "recipes:\n  - item: {name: 'a:b'}\n    label: Thing\n    wanted: 'lots'\n",
            "recipes[0].wanted: expected integer, got str",
        ),
    ],
)
def test_invalid_catalog_is_fatal(tmp_path: Path, text: str, fragment: str) -> None:
    path = tmp_path / "catalog.yaml"
    path.write_text(text, encoding="utf-8")

    with pytest.raises(CatalogStoreError) as excinfo:
        CatalogStore(path).load()

    assert fragment in str(excinfo.value)
    assert isinstance(excinfo.value, FatalBackendError)
    assert excinfo.value.path == path


def test_duplicate_identities_are_rejected(tmp_path: Path) -> None:
    path = tmp_path / "catalog.yaml"
    path.write_text(
        "recipes:\n"
        "  - item: {name: 'a:b', damage: 0}\n    label: First\n"
        "  - item: {name: 'a:b', damage: 0.5}\n    label: Second\n",
        encoding="utf-8",
    )

    with pytest.raises(CatalogStoreError, match=r"recipes\[1\]: duplicate item 'a:b:0'"):
        CatalogStore(path).load()


def test_unwritable_location_is_fatal(tmp_path: Path, make_recipe) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("", encoding="utf-8")
    store = CatalogStore(blocker / "catalog.yaml")

    with pytest.raises(CatalogStoreError, match="cannot save"):
        store.save([make_recipe("a:b")])
