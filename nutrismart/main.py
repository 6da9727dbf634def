"""NutriSmart Server - Entry point.

Serves the JSON API and the MCP tools over HTTP for Cloud Run deployment.
Uses Starlette with the MCP HTTP app mounted at root.
"""

import logging
import os
from typing import Optional

import uvicorn
from pydantic import ValidationError
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Mount, Route

from .core.models import FoodItem, UserProfile
from .core.site_config import theme_css_variables
from .core.tenancy import resolve_tenant_id
from .shell.auth import verify_id_token
from .shell.context import get_context
from .shell.errors import (
    AccountDeletionError,
    NutriSmartError,
    PaymentError,
    RoomLinkError,
    StorePermissionError,
    WebhookError,
)
from .shell.mcp_server import current_user_id, mcp
from .shell.session import load_profile
from .shell.settings import Settings


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def _error_status(error: NutriSmartError) -> int:
    if isinstance(error, StorePermissionError):
        return 403
    if isinstance(error, (WebhookError, PaymentError, AccountDeletionError)):
        return 502
    if isinstance(error, RoomLinkError):
        return 409
    return 400


def _current_profile() -> Optional[UserProfile]:
    user_id = current_user_id.get()
    if user_id is None:
        return None
    return load_profile(get_context().store, user_id)


async def _json_body(request: Request) -> dict:
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


# ==================== Route Handlers ====================


async def health_check(request: Request) -> JSONResponse:
    """Health check endpoint for Cloud Run."""
    return JSONResponse({"status": "healthy", "service": "nutrismart"})


async def get_site_config(request: Request) -> JSONResponse:
    """Resolved site config for the visitor: their tenant, else the Host subdomain."""
    ctx = get_context()
    tenant_id = resolve_tenant_id(
        request.url.hostname,
        _current_profile(),
        is_loading=False,
        platform_domains=ctx.settings.platform_domains,
    )
    config = ctx.site_config.resolve(tenant_id)
    return JSONResponse(
        {
            "tenantId": tenant_id,
            "config": config.model_dump(by_alias=True, mode="json"),
            "cssVariables": theme_css_variables(config),
        }
    )


async def add_meal(request: Request) -> JSONResponse:
    """Analyse and log a meal through the nutrition workflow."""
    user_id = current_user_id.get()
    if user_id is None:
        return _error("Usuário não autenticado.", 401)

    body = await _json_body(request)
    try:
        foods = [FoodItem.model_validate(food) for food in body.get("foods") or []]
    except ValidationError:
        return _error("Alimentos inválidos.", 422)
    if not body.get("mealType"):
        return _error("Tipo de refeição é obrigatório.", 422)

    try:
        entry = get_context().webhook.analyze_meal(
            user_id, body["mealType"], foods, body.get("date")
        )
    except NutriSmartError as e:
        return _error(e.user_message, _error_status(e))
    return JSONResponse({"mealEntry": entry.model_dump(by_alias=True, mode="json")})


async def generate_plan(request: Request) -> JSONResponse:
    """Draft a meal plan for the caller, or for a patient of the caller's room."""
    user_id = current_user_id.get()
    if user_id is None:
        return _error("Usuário não autenticado.", 401)

    ctx = get_context()
    body = await _json_body(request)
    patient_id = user_id
    if body.get("roomId"):
        room = ctx.rooms.get_room(body["roomId"])
        if room is None or room.professional_id != user_id:
            return _error("Sala não encontrada.", 404)
        patient_id = room.patient_id

    try:
        hydration_goal = int(body.get("hydrationGoal") or 0)
    except (TypeError, ValueError):
        return _error("Meta de hidratação inválida.", 422)
    if hydration_goal <= 0:
        return _error("Meta de hidratação é obrigatória.", 422)

    try:
        plan = ctx.webhook.generate_plan(
            patient_id,
            hydration_goal,
            calorie_goal=body.get("calorieGoal"),
            protein_goal=body.get("proteinGoal"),
            weight=body.get("weight"),
            target_weight=body.get("targetWeight"),
        )
    except NutriSmartError as e:
        return _error(e.user_message, _error_status(e))
    return JSONResponse({"plan": plan.model_dump(by_alias=True, mode="json", exclude_none=True)})


async def ask_chef(request: Request) -> JSONResponse:
    user_id = current_user_id.get()
    if user_id is None:
        return _error("Usuário não autenticado.", 401)

    body = await _json_body(request)
    try:
        reply = get_context().webhook.ask_chef(user_id, str(body.get("prompt") or ""))
    except NutriSmartError as e:
        return _error(e.user_message, _error_status(e))
    return JSONResponse(reply.model_dump(by_alias=True, mode="json", exclude_none=True))


async def create_pix_payment(request: Request) -> JSONResponse:
    """Create a PIX charge for the caller's subscription."""
    user_id = current_user_id.get()
    if user_id is None:
        return _error("Usuário não autenticado.", 401)

    body = await _json_body(request)
    try:
        amount = float(body.get("amount") or 0)
    except (TypeError, ValueError):
        amount = 0
    if amount <= 0:
        return _error("Valor inválido.", 422)

    try:
        payment = get_context().payments.create_payment(
            user_id,
            name=str(body.get("name") or ""),
            email=str(body.get("email") or ""),
            tax_id=str(body.get("taxId") or ""),
            cellphone=str(body.get("cellphone") or ""),
            amount=amount,
        )
    except NutriSmartError as e:
        return _error(e.user_message, _error_status(e))
    return JSONResponse(
        {"paymentId": payment.payment_id, "qrCode": payment.qr_code, "pixCode": payment.pix_code}
    )


async def check_pix_payment(request: Request) -> JSONResponse:
    """Check a charge; a PAID charge activates the caller's subscription."""
    user_id = current_user_id.get()
    if user_id is None:
        return _error("Usuário não autenticado.", 401)

    payment_id = request.path_params["payment_id"]
    try:
        status = get_context().subscriptions.confirm_payment(payment_id, user_id)
    except NutriSmartError as e:
        return _error(e.user_message, _error_status(e))
    return JSONResponse({"status": status.value})


def _require_super_admin() -> Optional[JSONResponse]:
    if current_user_id.get() is None:
        return _error("Usuário não autenticado.", 401)
    profile = _current_profile()
    if profile is None or not profile.is_super_admin:
        return _error("Permissão negada.", 403)
    return None


async def delete_tenant(request: Request) -> JSONResponse:
    denied = _require_super_admin()
    if denied is not None:
        return denied

    tenant_id = request.path_params["tenant_id"]
    try:
        get_context().tenants.delete_tenant(tenant_id)
    except NutriSmartError as e:
        logger.error("Error deleting tenant %s: %s", tenant_id, str(e))
        return _error(e.user_message, _error_status(e))
    return JSONResponse({"success": True})


async def delete_user(request: Request) -> JSONResponse:
    denied = _require_super_admin()
    if denied is not None:
        return denied

    uid = request.path_params["uid"]
    try:
        get_context().tenants.delete_user_account(uid)
    except NutriSmartError as e:
        return _error(e.user_message, _error_status(e))
    return JSONResponse({"success": True})


# ==================== Auth Middleware ====================


class AuthMiddleware(BaseHTTPMiddleware):
    """Authenticate requests using a Firebase ID token in the Authorization header."""

    async def dispatch(self, request: Request, call_next):
        current_user_id.set(None)
        auth_header = request.headers.get("Authorization", "")

        if auth_header.startswith("Bearer "):
            token = auth_header.replace("Bearer ", "", 1)
            user = verify_id_token(token, get_context().settings.project_id)
            if user is not None:
                # Set user context for this request
                current_user_id.set(user.uid)
                logger.debug("Authenticated user: %s", user.uid[:8])

        return await call_next(request)


# ==================== Create ASGI App ====================


def create_app(settings: Optional[Settings] = None) -> Starlette:
    """Create the Starlette application with MCP at root.

    The MCP streamable_http_app() handles /mcp/ internally when mounted at root.
    We use its lifespan context to ensure proper initialization.
    """
    mcp_app = mcp.streamable_http_app()

    # Custom routes first, then MCP app at root
    routes = [
        Route("/health", health_check, methods=["GET"]),
        Route("/site-config", get_site_config, methods=["GET"]),
        Route("/meals", add_meal, methods=["POST"]),
        Route("/plans/generate", generate_plan, methods=["POST"]),
        Route("/chef", ask_chef, methods=["POST"]),
        Route("/payments/pix", create_pix_payment, methods=["POST"]),
        Route("/payments/pix/{payment_id}", check_pix_payment, methods=["GET"]),
        Route("/admin/tenants/{tenant_id}", delete_tenant, methods=["DELETE"]),
        Route("/admin/users/{uid}", delete_user, methods=["DELETE"]),
        Mount("/", app=mcp_app),
    ]

    settings = settings or Settings.from_env()
    app = Starlette(
        routes=routes,
        middleware=[
            Middleware(
                CORSMiddleware,
                allow_origins=list(settings.cors_origins),
                allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
                allow_headers=["*"],
            ),
            Middleware(AuthMiddleware),
        ],
        lifespan=mcp_app.router.lifespan_context,
    )

    return app


# Create app at module level for Cloud Run
app = create_app()


def main() -> None:
    """Run the server."""
    port = int(os.environ.get("PORT", 8080))
    host = os.environ.get("HOST", "0.0.0.0")

    logger.info("Starting NutriSmart server on %s:%d", host, port)

    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()
