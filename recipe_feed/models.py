from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional


@dataclass(frozen=True)
class Category:
    """A recipe category such as "Soup" or "Dessert"."""

    id: int
    name: str


@dataclass
class Recipe:
    """Domain object representing a published recipe."""

    id: int
    title: str
    users_id: str
    servings: int = 0
    total_time_minutes: int = 0
    instructions: str = ""
    category: Optional[Category] = None
    ingredients: List[str] = field(default_factory=list)
    image_url: Optional[str] = None
    created_at: Optional[datetime] = None
    username: Optional[str] = None

    @property
    def category_name(self) -> Optional[str]:
        return self.category.name if self.category else None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "users_id": self.users_id,
            "username": self.username,
            "servings": self.servings,
            "total_time_minutes": self.total_time_minutes,
            "instructions": self.instructions,
            "category": self.category_name,
            "ingredients": list(self.ingredients),
            "image_url": self.image_url,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


__all__ = ["Category", "Recipe"]
