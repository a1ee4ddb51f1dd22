from __future__ import annotations

from typing import Iterable, Protocol

from .models import Category, Recipe


class RecipeRepository(Protocol):
    """Protocol describing the data the feed and the web layer need."""

    def list_recipes(self) -> Iterable[Recipe]:
        """Return an iterable of published recipes ordered newest first."""

    def list_user_recipes(self, user_id: str) -> Iterable[Recipe]:
        """Return the recipes owned by ``user_id`` ordered newest first."""

    def get_recipe(self, recipe_id: int) -> Recipe:
        """Return a single recipe or raise :class:`KeyError` if missing."""

    def list_categories(self) -> Iterable[Category]:
        """Return every category a recipe can belong to."""

    def list_followed_user_ids(self, viewer_id: str) -> Iterable[str]:
        """Return the ids of the users ``viewer_id`` follows."""

    def list_liked_recipe_ids(self, viewer_id: str) -> Iterable[int]:
        """Return the ids of the recipes ``viewer_id`` has liked."""

    def delete_recipe(self, recipe_id: int) -> None:
        """Remove a recipe and any associated assets.

        Raises :class:`KeyError` when the recipe does not exist.
        """

    def like_recipe(self, viewer_id: str, recipe_id: int) -> None:
        """Record that ``viewer_id`` likes ``recipe_id``."""

    def unlike_recipe(self, viewer_id: str, recipe_id: int) -> None:
        """Remove the like of ``viewer_id`` on ``recipe_id`` if present."""

    def follow_user(self, viewer_id: str, user_id: str) -> None:
        """Record that ``viewer_id`` follows ``user_id``."""

    def unfollow_user(self, viewer_id: str, user_id: str) -> None:
        """Stop ``viewer_id`` following ``user_id`` if they do."""


__all__ = ["RecipeRepository"]
