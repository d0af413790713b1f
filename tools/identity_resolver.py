"""Maps external identities and bearer credentials onto stored users."""

from __future__ import annotations

import logging
from typing import Optional

from logic.errors import Forbidden, Unauthorized
from memory.entity_store import EntityStore
from models.entities import User
from tools.token_verifier import TokenVerifier
from tryon_app.logging_config import get_logger, log_event

LOGGER = get_logger(__name__)


class IdentityResolver:
    """Creates users on first sight and authenticates subsequent requests."""

    def __init__(self, store: EntityStore, verifier: TokenVerifier) -> None:
        self.store = store
        self.verifier = verifier

    def sync(
        self,
        external_subject: str,
        email: str,
        display_name: str,
        photo_url: Optional[str] = None,
    ) -> User:
        """Return the user for ``external_subject``, creating it if needed.

        An existing user is returned unchanged: email and name changes made
        upstream are not copied over.
        """

        user, created = self.store.get_or_create_user(
            external_subject, email=email, name=display_name, photo_url=photo_url
        )
        log_event(
            LOGGER,
            logging.INFO,
            "identity_synced",
            user_id=user.id,
            user_created=created,
        )
        return user

    def authenticate(self, authorization: Optional[str]) -> User:
        """Resolve an ``Authorization: Bearer <token>`` header to a user."""

        if not authorization or not authorization.startswith("Bearer "):
            raise Unauthorized("Unauthorized - No token provided")
        token = authorization[len("Bearer "):].strip()
        if not token:
            raise Unauthorized("Unauthorized - No token provided")

        subject = self.verifier.verify(token)
        user = self.store.get_user_by_external_id(subject)
        if user is None:
            raise Unauthorized("Unauthorized - User not found")
        return user

    @staticmethod
    def require_admin(user: User) -> User:
        if not user.is_admin:
            raise Forbidden("Forbidden - Admin access required")
        return user


__all__ = ["IdentityResolver"]
