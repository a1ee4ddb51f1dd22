from __future__ import annotations

from typing import Optional, Protocol

from flask import session


class SessionProvider(Protocol):
    """Supplies the identity of whoever is looking at the feed."""

    def current_viewer_id(self) -> Optional[str]:
        """Return the viewer's user id, or ``None`` for anonymous visitors."""

    def is_logged_in(self) -> bool:
        """Return ``True`` when the viewer is authenticated."""


class FlaskSessionProvider:
    """Reads the viewer from the signed Flask session cookie.

    Signing users in is handled elsewhere; this only looks at the
    ``user_id`` key the auth layer leaves behind.
    """

    def __init__(self, key: str = "user_id") -> None:
        self._key = key

    def current_viewer_id(self) -> Optional[str]:
        viewer_id = session.get(self._key)
        return str(viewer_id) if viewer_id else None

    def is_logged_in(self) -> bool:
        return self.current_viewer_id() is not None


__all__ = ["FlaskSessionProvider", "SessionProvider"]
