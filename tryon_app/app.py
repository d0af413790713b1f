"""Try-on studio bootstrap."""

import logging
from typing import Dict, List, Optional

import google.generativeai as genai

from logic.catalog_filter import filter_fabrics, filter_models
from logic.checkout import CartService
from logic.errors import NotFound, UpstreamFailure
from logic.trial_generator import TrialGenerator, TrialWorkerPool
from logic.validation import (
    CreateFabricRequest,
    CreateModelRequest,
    ProfileUpdateRequest,
    SyncIdentityRequest,
    require_trusted_image,
)
from memory.entity_store import EntityStore, InMemoryEntityStore, SQLiteEntityStore
from memory.seed_data import seed_catalog
from models.entities import Fabric, Model, Trial, User
from tools.identity_resolver import IdentityResolver
from tools.image_generator import GeminiImageGenerator, ImageGenerator
from tools.profile_analyzer import GeminiProfileAnalyzer, ProfileAnalysis, ProfileAnalyzer
from tools.token_verifier import FirebaseTokenVerifier, SharedSecretTokenVerifier, TokenVerifier
from tryon_app.config import TryOnConfig
from tryon_app.logging_config import configure_logging, get_logger, log_event


LOGGER = get_logger(__name__)


class TryOnStudioApp:
    """Wires together the store, the identity layer, the AI collaborators and services."""

    def __init__(
        self,
        config: TryOnConfig | None = None,
        store: EntityStore | None = None,
        verifier: TokenVerifier | None = None,
        analyzer: ProfileAnalyzer | None = None,
        image_generator: ImageGenerator | None = None,
    ) -> None:
        self.config = config or TryOnConfig.from_env()
        configure_logging()
        if self.config.gemini_api_key:
            genai.configure(api_key=self.config.gemini_api_key)

        self.store = store or self._build_store()
        if self.config.seed_catalog:
            seed_catalog(self.store)

        self.identity = IdentityResolver(self.store, verifier or self._build_verifier())
        self.analyzer = analyzer or GeminiProfileAnalyzer(
            model_name=self.config.analysis_model,
            timeout_seconds=self.config.http_timeout_seconds,
            max_photo_bytes=self.config.max_photo_bytes,
        )
        self.image_generator = image_generator or GeminiImageGenerator(
            model_name=self.config.image_model,
            timeout_seconds=self.config.generation_timeout_seconds,
        )
        self.pool = TrialWorkerPool(
            store=self.store,
            generator=self.image_generator,
            workers=self.config.generation_workers,
            timeout_seconds=self.config.generation_timeout_seconds,
        )
        self.trials = TrialGenerator(
            store=self.store,
            pool=self.pool,
            trusted_image_origin=self.config.trusted_image_origin,
            fail_without_photo=self.config.fail_trials_without_photo,
        )
        self.cart = CartService(self.store)

    def _build_store(self) -> EntityStore:
        if self.config.store_backend == "sqlite":
            return SQLiteEntityStore(self.config.store_path or "data/tryon.db")
        return InMemoryEntityStore()

    def _build_verifier(self) -> TokenVerifier:
        if self.config.auth_mode == "shared_secret":
            return SharedSecretTokenVerifier(
                secret=self.config.auth_shared_secret or "",
                audience=self.config.firebase_project_id,
            )
        return FirebaseTokenVerifier(
            project_id=self.config.firebase_project_id,
            timeout_seconds=self.config.http_timeout_seconds,
        )

    async def start(self) -> None:
        await self.pool.start()

    async def stop(self) -> None:
        await self.pool.shutdown()

    # identity and profile

    def sync_identity(self, request: SyncIdentityRequest) -> User:
        return self.identity.sync(
            request.external_subject,
            email=request.email,
            display_name=request.name,
            photo_url=request.photo_url,
        )

    def get_profile(self, user: User) -> User:
        profile = self.store.get_user(user.id)
        if profile is None:
            raise NotFound("User not found")
        return profile

    def update_profile(self, user: User, request: ProfileUpdateRequest) -> User:
        changes = request.changes()
        if changes.get("photo_url") is not None:
            require_trusted_image(changes["photo_url"], self.config.trusted_image_origin, "photoUrl")
        updated = self.store.update_user(user.id, changes)
        log_event(LOGGER, logging.INFO, "profile_updated", user_id=user.id, fields=sorted(changes))
        return updated

    def analyze_photo(self, user: User, photo_url: str) -> ProfileAnalysis:
        """Classify the photo and store the result on the user's profile."""

        require_trusted_image(photo_url, self.config.trusted_image_origin, "photoUrl")
        try:
            analysis = self.analyzer.analyze(photo_url)
        except UpstreamFailure:
            raise
        except Exception as exc:
            raise UpstreamFailure("Failed to analyze photo. Please try again.") from exc

        self.store.update_user(
            user.id,
            {
                "body_shape": analysis.body_shape,
                "skin_tone": analysis.skin_tone,
                "color_palette": list(analysis.color_palette),
            },
        )
        log_event(
            LOGGER,
            logging.INFO,
            "profile_analyzed",
            user_id=user.id,
            body_shape=analysis.body_shape,
            skin_tone=analysis.skin_tone,
        )
        return analysis

    def user_stats(self, user: User) -> Dict[str, int]:
        return self.store.user_stats(user.id)

    # catalog

    def list_models(self, body_shape: Optional[str] = None, category: Optional[str] = None) -> List[Model]:
        return filter_models(self.store.list_models(), body_shape=body_shape, category=category)

    def get_model(self, model_id: str) -> Model:
        model = self.store.get_model(model_id)
        if model is None:
            raise NotFound("Model not found")
        return model

    def list_fabrics(self, skin_tone: Optional[str] = None, texture: Optional[str] = None) -> List[Fabric]:
        return filter_fabrics(self.store.list_fabrics(), skin_tone=skin_tone, texture=texture)

    def get_fabric(self, fabric_id: str) -> Fabric:
        fabric = self.store.get_fabric(fabric_id)
        if fabric is None:
            raise NotFound("Fabric not found")
        return fabric

    # admin

    def create_model(self, admin: User, request: CreateModelRequest) -> Model:
        self.identity.require_admin(admin)
        require_trusted_image(request.image_url, self.config.trusted_image_origin, "imageUrl")
        model = self.store.create_model(
            name=request.name,
            image_url=request.image_url,
            category=request.category,
            body_shapes=request.body_shapes,
            description=request.description,
        )
        log_event(LOGGER, logging.INFO, "model_created", model_id=model.id, category=model.category)
        return model

    def create_fabric(self, admin: User, request: CreateFabricRequest) -> Fabric:
        self.identity.require_admin(admin)
        require_trusted_image(request.image_url, self.config.trusted_image_origin, "imageUrl")
        fabric = self.store.create_fabric(
            name=request.name,
            image_url=request.image_url,
            texture=request.texture,
            skin_tones=request.skin_tones,
            price=request.price,
            retailer_id=request.retailer_id,
            description=request.description,
        )
        log_event(LOGGER, logging.INFO, "fabric_created", fabric_id=fabric.id, texture=fabric.texture)
        return fabric

    def admin_stats(self, admin: User) -> Dict[str, int]:
        self.identity.require_admin(admin)
        return self.store.stats()

    # trials

    async def generate_trials(self, user: User, model_ids: List[str], fabric_ids: List[str]) -> List[Trial]:
        return await self.trials.generate(user.id, model_ids, fabric_ids)


__all__ = ["TryOnStudioApp"]
