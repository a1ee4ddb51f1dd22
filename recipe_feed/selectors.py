from __future__ import annotations

from typing import Callable, FrozenSet, Iterable, Optional

SelectionCallback = Callable[[FrozenSet[str]], None]

LIKED = "liked"
FOLLOWED = "followed"
RELATION_FACETS = frozenset({LIKED, FOLLOWED})


class _TokenSelector:
    def __init__(self, on_change: Optional[SelectionCallback] = None) -> None:
        self._selected: set[str] = set()
        self._on_change = on_change

    @property
    def selected(self) -> FrozenSet[str]:
        return frozenset(self._selected)

    def select(self, token: str, checked: bool = True) -> FrozenSet[str]:
        """Add or remove ``token`` and notify the listener."""

        self._validate(token)
        if checked:
            self._selected.add(token)
        else:
            self._selected.discard(token)
        return self._notify()

    def select_many(self, tokens: Iterable[str]) -> FrozenSet[str]:
        tokens = list(tokens)
        for token in tokens:
            self._validate(token)
        self._selected.update(tokens)
        return self._notify()

    def clear(self) -> FrozenSet[str]:
        self._selected.clear()
        return self._notify()

    def _validate(self, token: str) -> None:
        pass

    def _notify(self) -> FrozenSet[str]:
        selection = self.selected
        if self._on_change is not None:
            self._on_change(selection)
        return selection


class CategorySelector(_TokenSelector):
    """Tracks the category names the viewer ticked."""


class UserRelationSelector(_TokenSelector):
    """Tracks the relation facets (liked, followed) the viewer ticked."""

    def _validate(self, token: str) -> None:
        if token not in RELATION_FACETS:
            raise ValueError(
                f"Unknown relation filter '{token}'. Expected one of: "
                + ", ".join(sorted(RELATION_FACETS))
            )


__all__ = [
    "CategorySelector",
    "FOLLOWED",
    "LIKED",
    "RELATION_FACETS",
    "UserRelationSelector",
]
