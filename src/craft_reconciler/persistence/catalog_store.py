"""
craft-reconciler — persisted recipe catalog

File: src/craft_reconciler/persistence/catalog_store.py

Purpose
- Load and save the durable part of the catalog: identity, label, wanted.

File format (YAML)
    schema_version: 1
    recipes:
      - item: {name: minecraft:piston, damage: 0}
        label: Piston
        wanted: 64

Functional requirements
- A missing file is a first run and loads as an empty catalog.
- A file that exists but cannot be parsed or validated is fatal; the
  reconciler must not silently start over with an empty catalog.
- Saves are atomic and any failure is fatal.
- Transient recipe state (stored, error, job handle) is never written.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import cast

import yaml

from craft_reconciler.backend.base import FatalBackendError
from craft_reconciler.constants import CATALOG_SCHEMA_VERSION
from craft_reconciler.domain.models import Recipe
from craft_reconciler.utils.fs import PathLike, atomic_write

logger = logging.getLogger(__name__)


class CatalogStoreError(FatalBackendError):
    """The catalog file could not be read, validated, or written."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        super().__init__(f"catalog {path}: {reason}")


class CatalogStore:
    """YAML-backed catalog persistence bound to one file."""

    __slots__ = ("_path",)

    def __init__(self, path: PathLike) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.is_file()

    def load(self) -> list[Recipe]:
        """Return the persisted recipes, in file order."""

        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.info("no catalog at %s, starting empty", self._path)
            return []
        except OSError as exc:
            raise CatalogStoreError(self._path, f"cannot read ({exc})") from exc

        try:
            loaded = cast("object", yaml.safe_load(text))
        except yaml.YAMLError as exc:
            raise CatalogStoreError(self._path, f"invalid YAML ({exc})") from exc

        try:
            recipes = _parse_catalog(loaded)
        except ValueError as exc:
            raise CatalogStoreError(self._path, str(exc)) from exc

        logger.info("loaded %d recipes from %s", len(recipes), self._path)
        return recipes

    def save(self, recipes: Iterable[Recipe]) -> None:
        records = [recipe.to_record() for recipe in recipes]
        payload = {"schema_version": CATALOG_SCHEMA_VERSION, "recipes": records}
        rendered = yaml.safe_dump(
            payload,
            sort_keys=False,
            default_flow_style=False,
            allow_unicode=True,
            width=120,
        )
        try:
            atomic_write(self._path, rendered, create_parents=True)
        except OSError as exc:
            raise CatalogStoreError(self._path, f"cannot save ({exc})") from exc
        logger.debug("saved %d recipes to %s", len(records), self._path)


def _parse_catalog(loaded: object) -> list[Recipe]:
    if loaded is None:
        return []
    if not isinstance(loaded, Mapping):
        raise ValueError(f"expected top-level mapping, got {type(loaded).__name__}")

    version = loaded.get("schema_version", CATALOG_SCHEMA_VERSION)
    if version != CATALOG_SCHEMA_VERSION:
        raise ValueError(
            f"unsupported schema_version {version!r}; expected {CATALOG_SCHEMA_VERSION}"
        )

    raw_recipes = loaded.get("recipes", [])
    if raw_recipes is None:
        return []
    if not isinstance(raw_recipes, list):
        raise ValueError(f"recipes: expected list, got {type(raw_recipes).__name__}")

    recipes: list[Recipe] = []
    seen: dict[str, int] = {}
    for index, raw in enumerate(raw_recipes):
        path = f"recipes[{index}]"
        if not isinstance(raw, Mapping):
            raise ValueError(f"{path}: expected mapping, got {type(raw).__name__}")
        recipe = Recipe.from_record(raw, path=path)
        if recipe.key in seen:
            raise ValueError(
                f"{path}: duplicate item {recipe.key!r} (first at recipes[{seen[recipe.key]}])"
            )
        seen[recipe.key] = index
        recipes.append(recipe)
    return recipes


__all__ = ["CatalogStore", "CatalogStoreError"]
