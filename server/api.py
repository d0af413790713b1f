"""FastAPI server exposing the try-on studio JSON API."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Type, TypeVar

from fastapi import APIRouter, Depends, FastAPI, Header, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError
from pydantic.alias_generators import to_camel

from logic.checkout import CartLine
from logic.errors import InvalidRequest, TryOnError
from logic.validation import (
    AddCartItemRequest,
    AnalyzePhotoRequest,
    CreateFabricRequest,
    CreateModelRequest,
    GenerateTrialsRequest,
    ProfileUpdateRequest,
    SyncIdentityRequest,
    invalid_request_from,
    invalid_request_from_errors,
)
from models.entities import User, entity_to_dict
from tools.profile_analyzer import ProfileAnalysis
from tryon_app.app import TryOnStudioApp
from tryon_app.logging_config import correlation_context, get_logger

LOGGER = get_logger(__name__)
CORRELATION_HEADER = "X-Correlation-ID"

S = TypeVar("S", bound=BaseModel)

router = APIRouter()


def camelize(payload: Any) -> Any:
    """Recursively convert snake_case keys into the API's camelCase."""

    if isinstance(payload, dict):
        return {to_camel(str(key)): camelize(value) for key, value in payload.items()}
    if isinstance(payload, list):
        return [camelize(item) for item in payload]
    return payload


def to_payload(entity: Any) -> Optional[Dict[str, Any]]:
    if entity is None:
        return None
    return camelize(entity_to_dict(entity))


def cart_line_payload(line: CartLine) -> Dict[str, Any]:
    payload = to_payload(line.item) or {}
    payload["model"] = to_payload(line.model)
    payload["fabric"] = to_payload(line.fabric)
    return payload


def analysis_payload(analysis: ProfileAnalysis) -> Dict[str, Any]:
    return {
        "bodyShape": analysis.body_shape,
        "skinTone": analysis.skin_tone,
        "colorPalette": list(analysis.color_palette),
    }


def get_studio(request: Request) -> TryOnStudioApp:
    return request.app.state.studio


def current_user(
    studio: TryOnStudioApp = Depends(get_studio),
    authorization: Optional[str] = Header(None),
) -> User:
    return studio.identity.authenticate(authorization)


def admin_user(
    user: User = Depends(current_user),
    studio: TryOnStudioApp = Depends(get_studio),
) -> User:
    return studio.identity.require_admin(user)


@router.get("/healthz")
async def healthcheck(studio: TryOnStudioApp = Depends(get_studio)) -> dict:
    """Lightweight readiness probe."""

    return {
        "status": "ok",
        "service": "tryon-studio",
        "environment": studio.config.environment or "local",
        "store": studio.config.store_backend,
        "generationWorkers": studio.config.generation_workers,
    }


@router.post("/api/auth/sync")
def sync_identity(request: SyncIdentityRequest, studio: TryOnStudioApp = Depends(get_studio)) -> dict:
    """Create the user for an external identity on first sight, else return it."""

    return to_payload(studio.sync_identity(request))


@router.get("/api/user/profile")
def get_profile(user: User = Depends(current_user), studio: TryOnStudioApp = Depends(get_studio)) -> dict:
    return to_payload(studio.get_profile(user))


@router.patch("/api/user/profile")
def update_profile(
    request: ProfileUpdateRequest,
    user: User = Depends(current_user),
    studio: TryOnStudioApp = Depends(get_studio),
) -> dict:
    return to_payload(studio.update_profile(user, request))


@router.get("/api/user/stats")
def get_user_stats(user: User = Depends(current_user), studio: TryOnStudioApp = Depends(get_studio)) -> dict:
    return camelize(studio.user_stats(user))


@router.post("/api/ai/analyze-photo")
def analyze_photo(
    request: AnalyzePhotoRequest,
    user: User = Depends(current_user),
    studio: TryOnStudioApp = Depends(get_studio),
) -> dict:
    """Classify the photo and store body shape, skin tone and palette on the profile."""

    return analysis_payload(studio.analyze_photo(user, request.photo_url))


@router.get("/api/models")
def list_models(
    body_shape: Optional[str] = Query(None, alias="bodyShape"),
    category: Optional[str] = Query(None),
    studio: TryOnStudioApp = Depends(get_studio),
) -> List[dict]:
    return [to_payload(model) for model in studio.list_models(body_shape=body_shape, category=category)]


@router.get("/api/models/{model_id}")
def get_model(model_id: str, studio: TryOnStudioApp = Depends(get_studio)) -> dict:
    return to_payload(studio.get_model(model_id))


@router.get("/api/fabrics")
def list_fabrics(
    skin_tone: Optional[str] = Query(None, alias="skinTone"),
    texture: Optional[str] = Query(None),
    studio: TryOnStudioApp = Depends(get_studio),
) -> List[dict]:
    return [to_payload(fabric) for fabric in studio.list_fabrics(skin_tone=skin_tone, texture=texture)]


@router.get("/api/fabrics/{fabric_id}")
def get_fabric(fabric_id: str, studio: TryOnStudioApp = Depends(get_studio)) -> dict:
    return to_payload(studio.get_fabric(fabric_id))


@router.post("/api/trials/generate")
async def generate_trials(
    request: GenerateTrialsRequest,
    user: User = Depends(current_user),
    studio: TryOnStudioApp = Depends(get_studio),
) -> List[dict]:
    """Create pending trials and return them before any image is generated."""

    trials = await studio.generate_trials(user, request.model_ids, request.fabric_ids)
    return [to_payload(trial) for trial in trials]


@router.get("/api/trials")
def list_trials(user: User = Depends(current_user), studio: TryOnStudioApp = Depends(get_studio)) -> List[dict]:
    return [to_payload(trial) for trial in studio.trials.list_for_user(user.id)]


@router.get("/api/trials/{trial_id}")
def get_trial(
    trial_id: str,
    user: User = Depends(current_user),
    studio: TryOnStudioApp = Depends(get_studio),
) -> dict:
    return to_payload(studio.trials.get_for_user(user.id, trial_id))


@router.get("/api/cart")
def list_cart(user: User = Depends(current_user), studio: TryOnStudioApp = Depends(get_studio)) -> List[dict]:
    return [cart_line_payload(line) for line in studio.cart.list_items(user.id)]


@router.post("/api/cart")
def add_to_cart(
    request: AddCartItemRequest,
    user: User = Depends(current_user),
    studio: TryOnStudioApp = Depends(get_studio),
) -> dict:
    item = studio.cart.add_item(user.id, request.trial_id, request.model_id, request.fabric_id)
    return to_payload(item)


@router.delete("/api/cart/{item_id}")
def remove_from_cart(
    item_id: str,
    user: User = Depends(current_user),
    studio: TryOnStudioApp = Depends(get_studio),
) -> dict:
    studio.cart.remove_item(user.id, item_id)
    return {"success": True}


@router.post("/api/orders/checkout")
def checkout(user: User = Depends(current_user), studio: TryOnStudioApp = Depends(get_studio)) -> dict:
    return to_payload(studio.cart.checkout(user.id))


@router.get("/api/orders")
def list_orders(user: User = Depends(current_user), studio: TryOnStudioApp = Depends(get_studio)) -> List[dict]:
    return [to_payload(order) for order in studio.cart.list_orders(user.id)]


@router.get("/api/admin/stats")
def admin_stats(admin: User = Depends(admin_user), studio: TryOnStudioApp = Depends(get_studio)) -> dict:
    return camelize(studio.admin_stats(admin))


async def read_admin_body(request: Request, schema: Type[S]) -> S:
    """Parse and validate an admin request body.

    Called from the handler, so it only runs once the admin dependency has
    accepted the caller: non-admins get 403 whatever they sent.
    """

    try:
        payload = await request.json()
    except ValueError as exc:
        raise InvalidRequest("Request body must be valid JSON") from exc
    if not isinstance(payload, dict):
        raise InvalidRequest("Request body must be a JSON object")
    try:
        return schema.model_validate(payload)
    except ValidationError as exc:
        raise invalid_request_from(exc) from exc


@router.post("/api/admin/models")
async def create_model(
    request: Request,
    admin: User = Depends(admin_user),
    studio: TryOnStudioApp = Depends(get_studio),
) -> dict:
    payload = await read_admin_body(request, CreateModelRequest)
    return to_payload(await run_in_threadpool(studio.create_model, admin, payload))


@router.post("/api/admin/fabrics")
async def create_fabric(
    request: Request,
    admin: User = Depends(admin_user),
    studio: TryOnStudioApp = Depends(get_studio),
) -> dict:
    payload = await read_admin_body(request, CreateFabricRequest)
    return to_payload(await run_in_threadpool(studio.create_fabric, admin, payload))


async def _handle_tryon_error(request: Request, exc: TryOnError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


async def _handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    error = invalid_request_from_errors(exc.errors())
    return JSONResponse(status_code=error.status_code, content=error.to_payload())


def create_app(studio: TryOnStudioApp | None = None) -> FastAPI:
    """Build the FastAPI application around a studio instance."""

    studio = studio or TryOnStudioApp()

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        await studio.start()
        try:
            yield
        finally:
            await studio.stop()

    app = FastAPI(title="Try-On Studio", version="0.1.0", lifespan=lifespan)
    app.state.studio = studio
    app.add_exception_handler(TryOnError, _handle_tryon_error)
    app.add_exception_handler(RequestValidationError, _handle_validation_error)

    @app.middleware("http")
    async def correlation_middleware(request: Request, call_next):
        with correlation_context(request.headers.get(CORRELATION_HEADER)) as correlation_id:
            response = await call_next(request)
        response.headers[CORRELATION_HEADER] = correlation_id
        return response

    app.include_router(router)
    return app


def get_app() -> FastAPI:
    """Expose a FastAPI instance for ASGI servers."""

    return create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("server.api:get_app", factory=True, host="0.0.0.0", port=8080, reload=False)
