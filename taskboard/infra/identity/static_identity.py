from __future__ import annotations

import logging
from typing import Optional

from taskboard.domain.board.ports import IdentityProvider

logger = logging.getLogger(__name__)


class StaticIdentity(IdentityProvider):
    """Holds the signed-in user id for the session. No tokens, no expiry."""

    def __init__(self, user_id: Optional[str] = None) -> None:
        self._user_id = (user_id or "").strip() or None

    def current_user_id(self) -> Optional[str]:
        return self._user_id

    def is_authenticated(self) -> bool:
        return self._user_id is not None

    def sign_in(self, user_id: str) -> None:
        user_id = (user_id or "").strip()
        if not user_id:
            raise ValueError("user_id must not be empty")
        self._user_id = user_id
        logger.info("Signed in as %s", user_id)

    def sign_out(self) -> None:
        self._user_id = None
        logger.info("Signed out")
