from __future__ import annotations

from pathlib import Path
import sys
from datetime import datetime, timedelta

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from recipe_feed import create_app
from recipe_feed.models import Category, Recipe


class InMemoryRecipeStorage:
    """Simple data provider used for tests."""

    def __init__(self) -> None:
        self._recipes: list[Recipe] = []
        self.categories: list[Category] = []
        self.followings: dict[str, set[str]] = {}
        self.likes: dict[str, set[int]] = {}
        self.fail_deletes = False
        self.fail_categories = False
        self.fail_followings = False
        self.fail_likes = False
        self.fail_follows = False
        self.fail_listing = False
        self._next_id = 1
        self._clock = datetime(2024, 1, 1)

    def add_category(self, name: str) -> Category:
        category = Category(id=len(self.categories) + 1, name=name)
        self.categories.append(category)
        return category

    def add_recipe(self, *, title: str, users_id: str, category: str | None = None) -> Recipe:
        matching = next((c for c in self.categories if c.name == category), None)
        if category and matching is None:
            matching = self.add_category(category)
        self._clock += timedelta(minutes=1)
        recipe = Recipe(
            id=self._next_id,
            title=title,
            users_id=users_id,
            servings=2,
            total_time_minutes=30,
            instructions="Cook it.",
            category=matching,
            ingredients=["water"],
            created_at=self._clock,
            username=users_id,
        )
        self._next_id += 1
        self._recipes.append(recipe)
        return recipe

    def list_recipes(self):
        if self.fail_listing:
            raise RuntimeError("backend down")
        return sorted(
            self._recipes,
            key=lambda recipe: recipe.created_at or datetime.min,
            reverse=True,
        )

    def list_user_recipes(self, user_id: str):
        return [recipe for recipe in self.list_recipes() if recipe.users_id == user_id]

    def get_recipe(self, recipe_id: int) -> Recipe:
        for recipe in self._recipes:
            if recipe.id == recipe_id:
                return recipe
        raise KeyError(recipe_id)

    def list_categories(self):
        if self.fail_categories:
            raise RuntimeError("categories unavailable")
        return list(self.categories)

    def list_followed_user_ids(self, viewer_id: str):
        if self.fail_followings:
            raise RuntimeError("followings unavailable")
        return set(self.followings.get(viewer_id, set()))

    def list_liked_recipe_ids(self, viewer_id: str):
        return set(self.likes.get(viewer_id, set()))

    def delete_recipe(self, recipe_id: int) -> None:
        if self.fail_deletes:
            raise RuntimeError("backend unavailable")
        for index, recipe in enumerate(self._recipes):
            if recipe.id == recipe_id:
                self._recipes.pop(index)
                return
        raise KeyError(recipe_id)

    def like_recipe(self, viewer_id: str, recipe_id: int) -> None:
        if self.fail_likes:
            raise RuntimeError("backend unavailable")
        self.likes.setdefault(viewer_id, set()).add(recipe_id)

    def unlike_recipe(self, viewer_id: str, recipe_id: int) -> None:
        if self.fail_likes:
            raise RuntimeError("backend unavailable")
        self.likes.get(viewer_id, set()).discard(recipe_id)

    def follow_user(self, viewer_id: str, user_id: str) -> None:
        if self.fail_follows:
            raise RuntimeError("backend unavailable")
        self.followings.setdefault(viewer_id, set()).add(user_id)

    def unfollow_user(self, viewer_id: str, user_id: str) -> None:
        if self.fail_follows:
            raise RuntimeError("backend unavailable")
        self.followings.get(viewer_id, set()).discard(user_id)


@pytest.fixture
def storage() -> InMemoryRecipeStorage:
    return InMemoryRecipeStorage()


@pytest.fixture
def client(storage):
    app = create_app(storage=storage)
    app.config.update(TESTING=True)
    return app.test_client()


@pytest.fixture
def login(client):
    def _login(user_id: str) -> None:
        with client.session_transaction() as session:
            session["user_id"] = user_id

    return _login
