"""Identity sync, bearer authentication and role checks."""

from __future__ import annotations

import time

import jwt
import pytest

from logic.errors import Forbidden, Unauthorized
from tools.identity_resolver import IdentityResolver
from tools.token_verifier import SharedSecretTokenVerifier, subject_from_claims


@pytest.fixture()
def resolver(store, verifier) -> IdentityResolver:
    return IdentityResolver(store, verifier)


def test_sync_creates_exactly_one_user_per_subject(resolver: IdentityResolver, store) -> None:
    first = resolver.sync("firebase-uid", "ada@example.com", "Ada")
    second = resolver.sync("firebase-uid", "new@example.com", "Ada Lovelace")

    assert second.id == first.id
    assert len(store.list_users()) == 1
    assert first.role == "user"
    assert first.body_shape is None and first.age is None


def test_sync_does_not_resync_upstream_changes(resolver: IdentityResolver) -> None:
    resolver.sync("firebase-uid", "ada@example.com", "Ada", photo_url="https://x/1.png")
    again = resolver.sync("firebase-uid", "changed@example.com", "Changed", photo_url=None)

    assert again.email == "ada@example.com"
    assert again.name == "Ada"
    assert again.photo_url == "https://x/1.png"


def test_authenticate_resolves_bearer_token(resolver: IdentityResolver, make_token) -> None:
    user = resolver.sync("firebase-uid", "ada@example.com", "Ada")

    resolved = resolver.authenticate(f"Bearer {make_token('firebase-uid')}")

    assert resolved.id == user.id


def test_authenticate_accepts_firebase_user_id_claim(resolver: IdentityResolver, make_token) -> None:
    user = resolver.sync("firebase-uid", "ada@example.com", "Ada")

    resolved = resolver.authenticate(f"Bearer {make_token('firebase-uid', claim='user_id')}")

    assert resolved.id == user.id


@pytest.mark.parametrize("header", [None, "", "Token abc", "Bearer ", "bearer abc"])
def test_authenticate_rejects_missing_or_malformed_header(resolver: IdentityResolver, header) -> None:
    with pytest.raises(Unauthorized):
        resolver.authenticate(header)


def test_authenticate_rejects_expired_token(resolver: IdentityResolver, make_token) -> None:
    resolver.sync("firebase-uid", "ada@example.com", "Ada")
    with pytest.raises(Unauthorized):
        resolver.authenticate(f"Bearer {make_token('firebase-uid', expires_in=-60)}")


def test_authenticate_rejects_wrong_audience(resolver: IdentityResolver, make_token) -> None:
    resolver.sync("firebase-uid", "ada@example.com", "Ada")
    with pytest.raises(Unauthorized):
        resolver.authenticate(f"Bearer {make_token('firebase-uid', audience='other-project')}")


def test_authenticate_rejects_wrong_signature(resolver: IdentityResolver) -> None:
    resolver.sync("firebase-uid", "ada@example.com", "Ada")
    now = int(time.time())
    forged = jwt.encode(
        {"sub": "firebase-uid", "aud": "tryon-test", "exp": now + 60},
        "some-other-shared-secret-0123456789abcdef",
        algorithm="HS256",
    )
    with pytest.raises(Unauthorized):
        resolver.authenticate(f"Bearer {forged}")


def test_authenticate_rejects_unknown_subject(resolver: IdentityResolver, make_token) -> None:
    with pytest.raises(Unauthorized):
        resolver.authenticate(f"Bearer {make_token('never-synced')}")


def test_require_admin(resolver: IdentityResolver, store) -> None:
    user = resolver.sync("plain", "p@example.com", "Plain")
    admin = store.create_user("boss", email="b@example.com", name="Boss", role="admin")

    assert resolver.require_admin(admin).id == admin.id
    with pytest.raises(Forbidden):
        resolver.require_admin(user)


def test_subject_from_claims_requires_subject() -> None:
    assert subject_from_claims({"user_id": "u", "sub": "s"}) == "u"
    assert subject_from_claims({"sub": "s"}) == "s"
    with pytest.raises(Unauthorized):
        subject_from_claims({})


def test_shared_secret_verifier_requires_secret() -> None:
    with pytest.raises(ValueError):
        SharedSecretTokenVerifier(secret="", audience="tryon-test")
