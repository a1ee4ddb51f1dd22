"""View state for a recipe feed.

A :class:`RecipeFeed` owns the recipes shown on one page, the relation data
loaded for the current viewer (available categories and followed users) and
the two filter selectors. The displayed recipes are always derived on demand
by :func:`filter_recipes`, so a delete or a filter toggle is visible on the
next :meth:`RecipeFeed.render` without refetching anything.

Provider calls are blocking, so they run in worker threads with a timeout.
Errors raised by the provider never escape the feed: relation fetches degrade
to empty sets and mutations report ``False``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, FrozenSet, Iterable, List, Optional, Sequence

from .models import Recipe
from .selectors import FOLLOWED, LIKED, CategorySelector, UserRelationSelector
from .storage import RecipeRepository

logger = logging.getLogger(__name__)

DEFAULT_FETCH_TIMEOUT = 5.0
DEFAULT_MUTATION_TIMEOUT = 10.0


def filter_recipes(
    recipes: Sequence[Recipe],
    selected_categories: Iterable[str],
    selected_facets: Iterable[str],
    liked_recipe_ids: Iterable[int],
    followed_user_ids: Iterable[str],
) -> List[Recipe]:
    """Return the recipes that pass both the category and the relation filter.

    An empty category selection matches every recipe, otherwise the recipe's
    category name must be selected. An empty facet selection matches every
    recipe, otherwise at least one selected facet must hold: ``liked`` when the
    recipe id is in ``liked_recipe_ids`` and ``followed`` when its owner is in
    ``followed_user_ids``.

    The input order is preserved. Anything other than a list or tuple of
    recipes yields an empty list.
    """

    if not isinstance(recipes, (list, tuple)):
        return []

    categories = set(selected_categories or ())
    facets = set(selected_facets or ())
    liked = set(liked_recipe_ids or ())
    followed = set(followed_user_ids or ())

    def category_match(recipe: Recipe) -> bool:
        return not categories or recipe.category_name in categories

    def relation_match(recipe: Recipe) -> bool:
        if not facets:
            return True
        return (LIKED in facets and recipe.id in liked) or (
            FOLLOWED in facets and recipe.users_id in followed
        )

    return [recipe for recipe in recipes if category_match(recipe) and relation_match(recipe)]


class FeedState:
    """The recipes a feed was seeded with, minus confirmed deletions."""

    def __init__(self, recipes: Any) -> None:
        if isinstance(recipes, (list, tuple)):
            self._recipes: List[Recipe] = list(recipes)
        else:
            if recipes is not None:
                logger.warning(
                    "Ignoring malformed recipe collection of type %s", type(recipes).__name__
                )
            self._recipes = []

    @property
    def recipes(self) -> List[Recipe]:
        return list(self._recipes)

    def remove(self, recipe_id: int) -> int:
        """Drop every recipe whose id equals ``recipe_id``; return how many went."""

        remaining = [recipe for recipe in self._recipes if recipe.id != recipe_id]
        removed = len(self._recipes) - len(remaining)
        self._recipes = remaining
        return removed

    def __len__(self) -> int:
        return len(self._recipes)


@dataclass
class RelationData:
    categories: List[str] = field(default_factory=list)
    followed_user_ids: FrozenSet[str] = frozenset()


@dataclass
class FeedPage:
    """What the view layer renders: the derived recipes, newest first."""

    recipes: List[Recipe]

    @property
    def no_matches(self) -> bool:
        return not self.recipes


class RecipeFeed:
    """Client-side state of one feed view.

    Parameters
    ----------
    provider:
        The data provider used for relation lookups and mutations.
    recipes:
        Initial snapshot, newest first.
    liked_recipe_ids:
        Ids of the recipes the viewer has liked.
    show_relation_filter:
        Whether the liked/followed selector is offered. Defaults to
        ``is_logged_in``.
    is_user_recipe:
        ``True`` when the feed lists the viewer's own recipes, which may be
        edited or deleted instead of liked.
    """

    def __init__(
        self,
        provider: RecipeRepository,
        recipes: Any,
        *,
        liked_recipe_ids: Iterable[int] = (),
        viewer_id: Optional[str] = None,
        is_logged_in: bool = False,
        show_relation_filter: Optional[bool] = None,
        is_user_recipe: bool = False,
        fetch_timeout: float = DEFAULT_FETCH_TIMEOUT,
        mutation_timeout: float = DEFAULT_MUTATION_TIMEOUT,
    ) -> None:
        self._provider = provider
        self._state = FeedState(recipes)
        self._relations = RelationData()
        self._liked_recipe_ids = set(liked_recipe_ids or ())
        self._viewer_id = viewer_id
        self.is_logged_in = is_logged_in
        self.show_relation_filter = (
            is_logged_in if show_relation_filter is None else show_relation_filter
        )
        self.is_user_recipe = is_user_recipe
        self._fetch_timeout = fetch_timeout
        self._mutation_timeout = mutation_timeout

        self._selected_categories: FrozenSet[str] = frozenset()
        self._selected_facets: FrozenSet[str] = frozenset()
        self.category_selector = CategorySelector(self.on_category_filter_change)
        self.relation_selector = UserRelationSelector(self.on_user_filter_change)

        self._mounted = False
        self._generation = 0

    @property
    def viewer_id(self) -> Optional[str]:
        return self._viewer_id

    @property
    def recipes(self) -> List[Recipe]:
        return self._state.recipes

    @property
    def relations(self) -> RelationData:
        return self._relations

    @property
    def liked_recipe_ids(self) -> FrozenSet[int]:
        return frozenset(self._liked_recipe_ids)

    @property
    def selected_categories(self) -> FrozenSet[str]:
        return self._selected_categories

    @property
    def selected_facets(self) -> FrozenSet[str]:
        return self._selected_facets

    @property
    def mounted(self) -> bool:
        return self._mounted

    def is_liked(self, recipe: Recipe) -> bool:
        return recipe.id in self._liked_recipe_ids

    # Lifecycle -----------------------------------------------------------

    async def mount(self) -> None:
        self._mounted = True
        await self.refresh_relations()

    def unmount(self) -> None:
        self._mounted = False
        self._generation += 1

    async def set_viewer(self, viewer_id: Optional[str]) -> None:
        """Switch the viewer and reload relation data for the new identity.

        Results still in flight for the previous viewer are discarded when
        they arrive.
        """

        if viewer_id == self._viewer_id:
            return
        self._viewer_id = viewer_id
        self._generation += 1
        self._relations.followed_user_ids = frozenset()
        if self._mounted:
            await self.refresh_relations()

    async def refresh_relations(self) -> None:
        generation = self._generation
        await asyncio.gather(
            self._load_categories(generation),
            self._load_followed_user_ids(generation, self._viewer_id),
        )

    def _is_current(self, generation: int) -> bool:
        return self._mounted and generation == self._generation

    async def _load_categories(self, generation: int) -> None:
        try:
            categories = await self._fetch(self._provider.list_categories)
            names = [category.name for category in categories]
        except Exception as exc:
            logger.warning("Could not load categories: %s", exc)
            names = []

        if not self._is_current(generation):
            logger.debug("Discarding stale category list (generation %d)", generation)
            return
        self._relations.categories = names

    async def _load_followed_user_ids(self, generation: int, viewer_id: Optional[str]) -> None:
        if viewer_id is None:
            followed: FrozenSet[str] = frozenset()
        else:
            try:
                followed = frozenset(
                    await self._fetch(self._provider.list_followed_user_ids, viewer_id)
                )
            except Exception as exc:
                logger.warning("Could not load followed users for %s: %s", viewer_id, exc)
                followed = frozenset()

        if not self._is_current(generation):
            logger.debug("Discarding stale followed users of %s (generation %d)", viewer_id, generation)
            return
        self._relations.followed_user_ids = followed

    async def _fetch(self, func: Callable[..., Iterable[Any]], *args: Any) -> List[Any]:
        return await asyncio.wait_for(
            asyncio.to_thread(lambda: list(func(*args))), timeout=self._fetch_timeout
        )

    async def _mutate(self, func: Callable[..., Any], *args: Any) -> None:
        await asyncio.wait_for(asyncio.to_thread(func, *args), timeout=self._mutation_timeout)

    # Callbacks -----------------------------------------------------------

    def on_category_filter_change(self, categories: Iterable[str]) -> None:
        self._selected_categories = frozenset(categories)

    def on_user_filter_change(self, facets: Iterable[str]) -> None:
        self._selected_facets = frozenset(facets)

    async def on_delete_requested(self, recipe_id: int) -> bool:
        return await self.request_delete(recipe_id)

    # Mutations -----------------------------------------------------------

    async def request_delete(self, recipe_id: int) -> bool:
        """Delete ``recipe_id`` through the provider and drop it from the feed.

        Returns ``False`` and leaves the feed untouched when the provider
        fails or times out.
        """

        try:
            await self._mutate(self._provider.delete_recipe, recipe_id)
        except Exception as exc:
            logger.error("Failed to delete recipe %s: %s", recipe_id, exc)
            return False

        removed = self._state.remove(recipe_id)
        logger.info("Deleted recipe %s (%d removed from feed)", recipe_id, removed)
        return True

    async def request_like(self, recipe_id: int, liked: bool = True) -> bool:
        if self._viewer_id is None:
            logger.warning("Anonymous viewer cannot like recipe %s", recipe_id)
            return False

        action = self._provider.like_recipe if liked else self._provider.unlike_recipe
        try:
            await self._mutate(action, self._viewer_id, recipe_id)
        except Exception as exc:
            logger.error(
                "Failed to %s recipe %s: %s", "like" if liked else "unlike", recipe_id, exc
            )
            return False

        if liked:
            self._liked_recipe_ids.add(recipe_id)
        else:
            self._liked_recipe_ids.discard(recipe_id)
        return True

    async def request_follow(self, user_id: str, followed: bool = True) -> bool:
        """Follow or unfollow ``user_id`` and update the followed set on success."""

        if self._viewer_id is None:
            logger.warning("Anonymous viewer cannot follow %s", user_id)
            return False

        action = self._provider.follow_user if followed else self._provider.unfollow_user
        try:
            await self._mutate(action, self._viewer_id, user_id)
        except Exception as exc:
            logger.error(
                "Failed to %s %s: %s", "follow" if followed else "unfollow", user_id, exc
            )
            return False

        current = self._relations.followed_user_ids
        if followed:
            self._relations.followed_user_ids = current | {user_id}
        else:
            self._relations.followed_user_ids = current - {user_id}
        return True

    # Rendering -----------------------------------------------------------

    def render(self) -> FeedPage:
        return FeedPage(
            recipes=filter_recipes(
                self._state.recipes,
                self._selected_categories,
                self._selected_facets,
                self._liked_recipe_ids,
                self._relations.followed_user_ids,
            )
        )


__all__ = [
    "DEFAULT_FETCH_TIMEOUT",
    "DEFAULT_MUTATION_TIMEOUT",
    "FeedPage",
    "FeedState",
    "RecipeFeed",
    "RelationData",
    "filter_recipes",
]
