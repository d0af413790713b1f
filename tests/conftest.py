"""Shared fixtures: in-memory store, offline collaborators and signed tokens."""

from __future__ import annotations

import sys
import time
from pathlib import Path
from typing import Callable

import jwt
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from memory.entity_store import InMemoryEntityStore  # noqa: E402
from tools.image_generator import MockImageGenerator  # noqa: E402
from tools.profile_analyzer import MockProfileAnalyzer  # noqa: E402
from tools.token_verifier import SharedSecretTokenVerifier  # noqa: E402
from tryon_app.app import TryOnStudioApp  # noqa: E402
from tryon_app.config import TryOnConfig  # noqa: E402

TRUSTED_ORIGIN = "https://firebasestorage.googleapis.com"
TEST_SECRET = "tryon-test-shared-secret-0123456789abcdef"
TEST_AUDIENCE = "tryon-test"


def trusted(path: str) -> str:
    return f"{TRUSTED_ORIGIN}/v0/b/tryon-test.appspot.com/o/{path}?alt=media"


@pytest.fixture()
def config() -> TryOnConfig:
    return TryOnConfig(
        firebase_project_id=TEST_AUDIENCE,
        auth_mode="shared_secret",
        auth_shared_secret=TEST_SECRET,
        trusted_image_origin=TRUSTED_ORIGIN,
        generation_workers=2,
        generation_timeout_seconds=2.0,
        seed_catalog=False,
    )


@pytest.fixture()
def store() -> InMemoryEntityStore:
    return InMemoryEntityStore()


@pytest.fixture()
def verifier() -> SharedSecretTokenVerifier:
    return SharedSecretTokenVerifier(secret=TEST_SECRET, audience=TEST_AUDIENCE)


@pytest.fixture()
def make_token() -> Callable[..., str]:
    def _make(subject: str, expires_in: int = 3600, audience: str = TEST_AUDIENCE, claim: str = "sub") -> str:
        now = int(time.time())
        claims = {claim: subject, "aud": audience, "iat": now, "exp": now + expires_in}
        return jwt.encode(claims, TEST_SECRET, algorithm="HS256")

    return _make


@pytest.fixture()
def image_generator() -> MockImageGenerator:
    return MockImageGenerator()


@pytest.fixture()
def analyzer() -> MockProfileAnalyzer:
    return MockProfileAnalyzer()


@pytest.fixture()
def studio(config, store, verifier, analyzer, image_generator) -> TryOnStudioApp:
    return TryOnStudioApp(
        config=config,
        store=store,
        verifier=verifier,
        analyzer=analyzer,
        image_generator=image_generator,
    )


@pytest.fixture()
def trusted_url() -> Callable[[str], str]:
    return trusted
