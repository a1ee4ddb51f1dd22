from __future__ import annotations

import logging
import os
from datetime import datetime, timedelta
from typing import Dict, Iterable, Iterator, List, Optional

from google.api_core import exceptions as gcloud_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import firestore, storage
from google.cloud.firestore_v1.base_query import FieldFilter

from .models import Category, Recipe
from .storage import RecipeRepository

logger = logging.getLogger(__name__)

SIGNED_URL_EXPIRATION = timedelta(days=7)


def _parse_ingredients(ingredients_text: str) -> List[str]:
    return [line.strip() for line in ingredients_text.splitlines() if line.strip()]


def _as_int(value, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


class FirestoreRecipeStorage(RecipeRepository):
    """GCP backed recipe data using Firestore and Cloud Storage.

    Recipes live in ``published_recipes`` with the numeric recipe id as the
    document id. Categories, followings and likes are kept in their own
    collections and joined in Python.
    """

    def __init__(
        self,
        *,
        project: Optional[str] = None,
        collection_name: str = "published_recipes",
        bucket_name: Optional[str] = None,
    ) -> None:
        self._firestore_client = firestore.Client(project=project)
        self._collection = self._firestore_client.collection(collection_name)
        self._categories = self._firestore_client.collection("categories")
        self._followings = self._firestore_client.collection("followings")
        self._likes = self._firestore_client.collection("liked_recipes")

        if bucket_name:
            self._bucket = storage.Client(project=project).bucket(bucket_name)
        else:
            self._bucket = None

    @classmethod
    def from_env(cls) -> "FirestoreRecipeStorage":
        """Build a storage instance from environment variables."""

        project = os.environ.get("GCP_PROJECT")
        collection_name = os.environ.get("RECIPES_COLLECTION", "published_recipes")
        bucket_name = os.environ.get("GCS_BUCKET")
        return cls(project=project, collection_name=collection_name, bucket_name=bucket_name)

    def list_recipes(self) -> Iterable[Recipe]:
        query = self._collection.order_by("created_at", direction=firestore.Query.DESCENDING)
        return self._stream_recipes(query)

    def list_user_recipes(self, user_id: str) -> Iterable[Recipe]:
        query = self._collection.where(filter=FieldFilter("users_id", "==", user_id)).order_by(
            "created_at", direction=firestore.Query.DESCENDING
        )
        return self._stream_recipes(query)

    def get_recipe(self, recipe_id: int) -> Recipe:
        snapshot = self._collection.document(str(recipe_id)).get()

        if not snapshot.exists:
            raise KeyError(f"Recipe '{recipe_id}' does not exist.")

        data = snapshot.to_dict() or {}
        return self._doc_to_recipe(snapshot.id, data, self._category_index())

    def list_categories(self) -> Iterable[Category]:
        for doc in self._categories.order_by("category_name").stream():
            data = doc.to_dict() or {}
            yield Category(id=_as_int(data.get("id", doc.id)), name=data.get("category_name", ""))

    def list_followed_user_ids(self, viewer_id: str) -> Iterable[str]:
        query = self._followings.where(filter=FieldFilter("follower_id", "==", viewer_id))
        for doc in query.stream():
            following_id = (doc.to_dict() or {}).get("following_id")
            if following_id:
                yield str(following_id)

    def list_liked_recipe_ids(self, viewer_id: str) -> Iterable[int]:
        query = self._likes.where(filter=FieldFilter("users_id", "==", viewer_id))
        for doc in query.stream():
            recipe_id = (doc.to_dict() or {}).get("published_recipes_id")
            if recipe_id is not None:
                yield _as_int(recipe_id)

    def delete_recipe(self, recipe_id: int) -> None:
        doc_ref = self._collection.document(str(recipe_id))
        snapshot = doc_ref.get()

        if not snapshot.exists:
            raise KeyError(f"Recipe '{recipe_id}' does not exist.")

        data = snapshot.to_dict() or {}
        self._delete_blob_if_exists(data.get("image_blob_name"))

        likes = self._likes.where(filter=FieldFilter("published_recipes_id", "==", recipe_id))
        for like in likes.stream():
            like.reference.delete()

        doc_ref.delete()
        logger.info("Deleted recipe document %s", recipe_id)

    def like_recipe(self, viewer_id: str, recipe_id: int) -> None:
        self._likes.document(self._like_doc_id(viewer_id, recipe_id)).set(
            {
                "users_id": viewer_id,
                "published_recipes_id": recipe_id,
                "created_at": firestore.SERVER_TIMESTAMP,
            }
        )

    def unlike_recipe(self, viewer_id: str, recipe_id: int) -> None:
        self._likes.document(self._like_doc_id(viewer_id, recipe_id)).delete()

    def follow_user(self, viewer_id: str, user_id: str) -> None:
        if viewer_id == user_id:
            raise ValueError("Users cannot follow themselves.")
        self._followings.document(f"{viewer_id}_{user_id}").set(
            {
                "follower_id": viewer_id,
                "following_id": user_id,
                "created_at": firestore.SERVER_TIMESTAMP,
            }
        )

    def unfollow_user(self, viewer_id: str, user_id: str) -> None:
        self._followings.document(f"{viewer_id}_{user_id}").delete()

    def _stream_recipes(self, query) -> Iterator[Recipe]:
        categories = self._category_index()
        for doc in query.stream():
            data = doc.to_dict() or {}
            yield self._doc_to_recipe(doc.id, data, categories)

    def _category_index(self) -> Dict[int, Category]:
        return {category.id: category for category in self.list_categories()}

    def _doc_to_recipe(self, doc_id: str, data: dict, categories: Dict[int, Category]) -> Recipe:
        ingredients = data.get("ingredients")
        if isinstance(ingredients, str):
            parsed_ingredients = _parse_ingredients(ingredients)
        elif isinstance(ingredients, list):
            parsed_ingredients = [str(item) for item in ingredients]
        else:
            parsed_ingredients = []

        created_at = data.get("created_at")
        if isinstance(created_at, datetime):
            timestamp = created_at
        else:
            timestamp = None

        image_blob_name = data.get("image_blob_name")
        image_url = data.get("image_url")

        if image_blob_name and self._bucket:
            blob = self._bucket.blob(image_blob_name)
            image_url = self._get_image_url(blob)

        category_id = data.get("categories_id")
        category = categories.get(_as_int(category_id)) if category_id is not None else None

        return Recipe(
            id=_as_int(data.get("id", doc_id)),
            title=data.get("title", ""),
            users_id=str(data.get("users_id", "")),
            servings=_as_int(data.get("servings")),
            total_time_minutes=_as_int(data.get("total_time_minutes")),
            instructions=data.get("instructions", ""),
            category=category,
            ingredients=parsed_ingredients,
            image_url=image_url,
            created_at=timestamp,
            username=data.get("username"),
        )

    @staticmethod
    def _like_doc_id(viewer_id: str, recipe_id: int) -> str:
        return f"{viewer_id}_{recipe_id}"

    def _delete_blob_if_exists(self, blob_name: str | None) -> None:
        if not blob_name or not self._bucket:
            return

        blob = self._bucket.blob(blob_name)

        try:
            blob.delete()
        except gcloud_exceptions.NotFound:
            # Already removed by hand.
            pass

    def _get_image_url(self, blob: storage.Blob) -> str:
        try:
            return blob.generate_signed_url(
                version="v4", method="GET", expiration=SIGNED_URL_EXPIRATION
            )
        except (ValueError, TypeError, AttributeError, auth_exceptions.GoogleAuthError):
            # Signing needs a service account key; local credentials fall
            # back to the public URL.
            return blob.public_url


__all__ = ["FirestoreRecipeStorage"]
