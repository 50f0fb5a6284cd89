"""In-memory recipe catalog and its explicit editing operations."""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from craft_reconciler.domain.models import Recipe, validate_wanted


class UnknownRecipeError(KeyError):
    """No catalog entry has the requested identity key."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(key)

    def __str__(self) -> str:
        return f"unknown recipe {self.key!r}"


class RecipeCatalog:
    """Ordered collection of recipes.

    Order is the order in which recipes were loaded or learned; work
    discovery scans in this order. Entries leave the catalog only through
    :meth:`remove`.
    """

    __slots__ = ("_entries",)

    def __init__(self, recipes: Iterable[Recipe] = ()) -> None:
        self._entries: list[Recipe] = list(recipes)

    @property
    def entries(self) -> list[Recipe]:
        """Live list mutated by the matching pass when it learns recipes."""
        return self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Recipe]:
        return iter(self._entries)

    def __contains__(self, recipe: object) -> bool:
        return any(entry is recipe for entry in self._entries)

    def get(self, key: str) -> Recipe:
        for recipe in self._entries:
            if recipe.key == key:
                return recipe
        raise UnknownRecipeError(key)

    def find(self, text: str = "") -> list[Recipe]:
        """Case-insensitive substring search over display labels."""

        needle = text.strip().casefold()
        return [recipe for recipe in self._entries if needle in recipe.label.casefold()]

    def set_wanted(self, key: str, wanted: object) -> Recipe:
        recipe = self.get(key)
        recipe.wanted = validate_wanted(wanted)
        return recipe

    def remove(self, key: str) -> Recipe:
        recipe = self.get(key)
        self._entries = [entry for entry in self._entries if entry is not recipe]
        return recipe


__all__ = ["RecipeCatalog", "UnknownRecipeError"]
