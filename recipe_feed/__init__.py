import asyncio
import logging
import os
from typing import Any, Callable, Iterable, List, Optional, Set

from flask import Flask, abort, flash, jsonify, redirect, render_template, request, url_for

from .feed import DEFAULT_FETCH_TIMEOUT, DEFAULT_MUTATION_TIMEOUT, FeedPage, RecipeFeed
from .models import Category, Recipe
from .selectors import RELATION_FACETS
from .session import FlaskSessionProvider, SessionProvider
from .storage import RecipeRepository

try:
    from .gcp_storage import FirestoreRecipeStorage
except ImportError:  # pragma: no cover - allows running tests without the Google Cloud libraries
    FirestoreRecipeStorage = None  # type: ignore[assignment]

logger = logging.getLogger(__name__)


def create_app(
    storage: Optional[RecipeRepository] = None,
    session_provider: Optional[SessionProvider] = None,
) -> Flask:
    """Create and configure the Flask application.

    Parameters
    ----------
    storage:
        Optional data provider. When ``None`` the application will use
        :class:`FirestoreRecipeStorage` configured through environment variables.
    session_provider:
        Optional source of the viewer identity. Defaults to the signed Flask
        session.
    """

    app = Flask(__name__)
    app.secret_key = os.environ.get("FLASK_SECRET_KEY", "development-secret-change-me")
    app.config["FEED_FETCH_TIMEOUT"] = float(
        os.environ.get("FEED_FETCH_TIMEOUT", DEFAULT_FETCH_TIMEOUT)
    )
    app.config["FEED_MUTATION_TIMEOUT"] = float(
        os.environ.get("FEED_MUTATION_TIMEOUT", DEFAULT_MUTATION_TIMEOUT)
    )

    if storage is None:
        if FirestoreRecipeStorage is None:
            raise RuntimeError(
                "google-cloud-firestore is not installed. Install it "
                "or pass an explicit storage backend to create_app."
            )
        storage = FirestoreRecipeStorage.from_env()
    app.config["RECIPE_STORAGE"] = storage
    app.config["SESSION_PROVIDER"] = session_provider or FlaskSessionProvider()

    def new_feed(recipes, *, liked_recipe_ids: Iterable[int] = (), **options) -> RecipeFeed:
        viewer: SessionProvider = app.config["SESSION_PROVIDER"]
        return RecipeFeed(
            app.config["RECIPE_STORAGE"],
            recipes,
            liked_recipe_ids=liked_recipe_ids,
            viewer_id=viewer.current_viewer_id(),
            is_logged_in=viewer.is_logged_in(),
            fetch_timeout=app.config["FEED_FETCH_TIMEOUT"],
            mutation_timeout=app.config["FEED_MUTATION_TIMEOUT"],
            **options,
        )

    async def load_feed(recipes, *, is_user_recipe: bool = False) -> RecipeFeed:
        viewer: SessionProvider = app.config["SESSION_PROVIDER"]
        liked: Set[int] = set()
        if viewer.is_logged_in():
            liked = await _load_liked_recipe_ids(
                app.config["RECIPE_STORAGE"],
                viewer.current_viewer_id(),
                timeout=app.config["FEED_FETCH_TIMEOUT"],
            )

        feed = new_feed(recipes, liked_recipe_ids=liked, is_user_recipe=is_user_recipe)
        await feed.mount()
        return feed

    async def load_recipes(
        description: str, func: Callable[..., Iterable[Recipe]], *args: Any
    ) -> List[Recipe]:
        return await _fetch_or_empty(
            description, func, *args, timeout=app.config["FEED_FETCH_TIMEOUT"]
        )

    def render_feed(feed: RecipeFeed, page: FeedPage, title: str, **context) -> str:
        return render_template(
            "feed.html",
            feed=feed,
            page=page,
            title=title,
            relation_facets=sorted(RELATION_FACETS),
            **context,
        )

    @app.get("/")
    async def index() -> str:
        recipes = await load_recipes("recipes", app.config["RECIPE_STORAGE"].list_recipes)
        feed = await load_feed(recipes)
        try:
            _apply_filters(feed)
        except ValueError as exc:
            flash(str(exc), "error")
        page = feed.render()
        feed.unmount()
        return render_feed(feed, page, "Recipe Feed")

    @app.get("/users/<user_id>/recipes")
    async def user_recipes(user_id: str) -> str:
        viewer: SessionProvider = app.config["SESSION_PROVIDER"]
        recipes = await load_recipes(
            f"recipes of {user_id}", app.config["RECIPE_STORAGE"].list_user_recipes, user_id
        )
        feed = await load_feed(recipes, is_user_recipe=viewer.current_viewer_id() == user_id)
        try:
            _apply_filters(feed)
        except ValueError as exc:
            flash(str(exc), "error")
        page = feed.render()
        feed.unmount()
        return render_feed(
            feed, page, "My recipes" if feed.is_user_recipe else "Recipes", profile_user_id=user_id
        )

    @app.get("/api/feed")
    async def api_feed():
        recipes = await load_recipes("recipes", app.config["RECIPE_STORAGE"].list_recipes)
        feed = await load_feed(recipes)
        try:
            _apply_filters(feed)
        except ValueError as exc:
            feed.unmount()
            return jsonify({"error": str(exc)}), 400
        page = feed.render()
        feed.unmount()
        return jsonify(
            {
                "recipes": [recipe.to_dict() for recipe in page.recipes],
                "no_matches": page.no_matches,
                "categories": feed.relations.categories,
                "liked_recipe_ids": sorted(feed.liked_recipe_ids),
            }
        )

    @app.get("/recipes/<int:recipe_id>")
    def recipe_detail(recipe_id: int) -> str:
        storage_backend: RecipeRepository = app.config["RECIPE_STORAGE"]

        try:
            recipe = storage_backend.get_recipe(recipe_id)
        except KeyError:
            flash("Recipe not found.", "error")
            return redirect(url_for("index"))
        except Exception as exc:
            logger.warning("Could not load recipe %s: %s", recipe_id, exc)
            flash("Could not load the recipe. Please try again later.", "error")
            return redirect(url_for("index"))

        return render_template("recipe.html", recipe=recipe, title=recipe.title or "Recipe")

    @app.post("/recipes/<int:recipe_id>/delete")
    async def delete_recipe(recipe_id: int) -> str:
        storage_backend: RecipeRepository = app.config["RECIPE_STORAGE"]
        viewer_id = app.config["SESSION_PROVIDER"].current_viewer_id()
        if viewer_id is None:
            flash("Please sign in to manage your recipes.", "error")
            return redirect(url_for("index"))

        try:
            recipe = storage_backend.get_recipe(recipe_id)
        except KeyError:
            flash("Recipe not found.", "error")
            return redirect(url_for("user_recipes", user_id=viewer_id))
        except Exception as exc:
            logger.warning("Could not load recipe %s: %s", recipe_id, exc)
            flash("Failed to delete recipe.", "error")
            return redirect(url_for("user_recipes", user_id=viewer_id))

        if recipe.users_id != viewer_id:
            abort(403)

        # The owner's page is rebuilt after the redirect; only the outcome is used here.
        feed = new_feed([recipe], is_user_recipe=True)
        if await feed.on_delete_requested(recipe_id):
            flash("Recipe deleted.", "success")
        else:
            flash("Failed to delete recipe.", "error")
        return redirect(url_for("user_recipes", user_id=viewer_id))

    @app.post("/recipes/<int:recipe_id>/like")
    async def like_recipe(recipe_id: int) -> str:
        return await _set_like(recipe_id, liked=True)

    @app.post("/recipes/<int:recipe_id>/unlike")
    async def unlike_recipe(recipe_id: int) -> str:
        return await _set_like(recipe_id, liked=False)

    async def _set_like(recipe_id: int, *, liked: bool) -> str:
        if not app.config["SESSION_PROVIDER"].is_logged_in():
            flash("Please sign in to like recipes.", "error")
            return redirect(url_for("index"))

        feed = new_feed([])
        if not await feed.request_like(recipe_id, liked=liked):
            flash("Failed to update your likes.", "error")
        return redirect(url_for("index"))

    @app.post("/users/<user_id>/follow")
    async def follow_user(user_id: str) -> str:
        return await _set_follow(user_id, followed=True)

    @app.post("/users/<user_id>/unfollow")
    async def unfollow_user(user_id: str) -> str:
        return await _set_follow(user_id, followed=False)

    async def _set_follow(user_id: str, *, followed: bool) -> str:
        viewer_id = app.config["SESSION_PROVIDER"].current_viewer_id()
        if viewer_id is None:
            flash("Please sign in to follow other cooks.", "error")
            return redirect(url_for("user_recipes", user_id=user_id))
        if viewer_id == user_id:
            flash("You cannot follow yourself.", "error")
            return redirect(url_for("user_recipes", user_id=user_id))

        feed = new_feed([])
        if not await feed.request_follow(user_id, followed=followed):
            flash("Failed to update the people you follow.", "error")
        return redirect(url_for("user_recipes", user_id=user_id))

    return app


def _apply_filters(feed: RecipeFeed) -> None:
    """Feed the query string selection into the feed's selectors.

    Facet filters are only honoured when the feed offers them. Raises
    :class:`ValueError` for unknown facets.
    """

    categories = [name for name in request.args.getlist("category") if name]
    if categories:
        feed.category_selector.select_many(categories)

    facets = [facet for facet in request.args.getlist("filter") if facet]
    if facets and feed.show_relation_filter:
        feed.relation_selector.select_many(facets)


async def _fetch_or_empty(
    description: str, func: Callable[..., Iterable[Any]], *args: Any, timeout: float
) -> List[Any]:
    """Run a blocking provider listing in a worker thread.

    Failures and timeouts are logged and turned into an empty list.
    """

    try:
        return await asyncio.wait_for(
            asyncio.to_thread(lambda: list(func(*args))), timeout=timeout
        )
    except Exception as exc:
        logger.warning("Could not load %s: %s", description, exc)
        return []


async def _load_liked_recipe_ids(
    storage: RecipeRepository, viewer_id: Optional[str], *, timeout: float
) -> Set[int]:
    if viewer_id is None:
        return set()
    return set(
        await _fetch_or_empty(
            f"liked recipes of {viewer_id}", storage.list_liked_recipe_ids, viewer_id, timeout=timeout
        )
    )


__all__ = ["create_app", "Category", "Recipe", "RecipeFeed"]
