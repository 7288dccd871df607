"""
HTTP surface of the gateway.

/mcp/*  named operations (command dispatch and convenience routes)
/api/*  1:1 passthrough to the Fishbowl REST API
"""

import json
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from fishbowl_gateway import __version__
from fishbowl_gateway.config import Settings, load_settings
from fishbowl_gateway.errors import GatewayError, ValidationError
from fishbowl_gateway.gateway import Gateway
from fishbowl_gateway.models.api import AddInventoryRequest, ExecuteRequest
from fishbowl_gateway.ratelimit import RateLimiter

logger = logging.getLogger(__name__)

SERVICE_NAME = "Fishbowl Gateway"

ORDER_ACTIONS = {
    "purchase-orders": {"issue", "unissue", "close-short", "void"},
    "manufacture-orders": {"issue", "unissue", "close-short"},
}
INVENTORY_ACTIONS = {"add", "cycle", "scrap"}

# Registered in order: literal segments must precede the {action} catch-alls
PASSTHROUGH_ROUTES: list[tuple[str, list[str]]] = [
    ("/api/parts", ["GET"]),
    ("/api/parts/inventory", ["GET"]),
    ("/api/parts/{part_id}/best-cost", ["GET"]),
    ("/api/parts/{part_id}/inventory/{inventory_action}", ["POST"]),
    ("/api/products/{product_id}/best-price", ["GET"]),
    ("/api/uoms", ["GET"]),
    ("/api/vendors", ["GET"]),
    ("/api/users", ["GET"]),
]
for _resource in ORDER_ACTIONS:
    PASSTHROUGH_ROUTES += [
        (f"/api/{_resource}", ["GET", "POST"]),
        (f"/api/{_resource}/{{order_id}}/memos", ["GET", "POST"]),
        (f"/api/{_resource}/{{order_id}}/memos/{{memo_id}}", ["GET", "POST", "DELETE"]),
        (f"/api/{_resource}/{{order_id}}", ["GET", "POST", "DELETE"]),
    ]
PASSTHROUGH_ROUTES += [
    ("/api/purchase-orders/{order_id}/close-short/{item_id}", ["POST"]),
    ("/api/purchase-orders/{order_id}/{action}", ["POST"]),
    ("/api/manufacture-orders/{order_id}/{action}", ["POST"]),
]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


async def _json_body(request: Request) -> Any:
    raw = await request.body()
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        raise ValidationError("Request body is not valid JSON", ["body"])


def _parse(model, data: Any):
    try:
        return model.model_validate(data if data is not None else {})
    except PydanticValidationError as e:
        fields = [".".join(str(part) for part in err["loc"]) for err in e.errors()]
        raise ValidationError(f"Invalid request body: {', '.join(fields)}", fields)


def _check_action(request: Request) -> None:
    params = request.path_params
    if "inventory_action" in params and params["inventory_action"] not in INVENTORY_ACTIONS:
        raise ValidationError(f"Invalid inventory action: {params['inventory_action']}", ["action"])
    if "action" in params:
        resource = request.url.path.split("/")[2]
        if params["action"] not in ORDER_ACTIONS.get(resource, ()):
            raise ValidationError(f"Invalid action: {params['action']}", ["action"])


def _ok(data: Any, key: str = "data") -> dict[str, Any]:
    return {"success": True, key: data, "timestamp": _now()}


def create_app(settings: Optional[Settings] = None, gateway: Optional[Gateway] = None) -> FastAPI:
    """Create the FastAPI application.

    Args:
        settings: Gateway settings; loaded from the environment when omitted.
        gateway: Pre-built gateway (tests inject one); built from settings when omitted.
    """
    if gateway is None:
        settings = settings or load_settings()
        gateway = Gateway.from_settings(settings)
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("%s starting, upstream %s (%s)", SERVICE_NAME, settings.target(), gateway.protocol)
        await gateway.start()
        yield
        logger.info("%s shutting down", SERVICE_NAME)
        await gateway.shutdown()

    app = FastAPI(title=SERVICE_NAME, version=__version__, lifespan=lifespan)
    app.state.gateway = gateway
    app.state.settings = settings
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])

    if settings.rate_limit_enabled:
        limiter = RateLimiter(settings.rate_limit_capacity, settings.rate_limit_refill_per_second)

        @app.middleware("http")
        async def rate_limit(request: Request, call_next):
            if request.url.path == "/health":
                return await call_next(request)
            client = request.client.host if request.client else "unknown"
            allowed, headers = limiter.check(client)
            if not allowed:
                return JSONResponse(
                    status_code=429,
                    content={"success": False, "error": "Too many requests", "code": "rate_limited",
                             "timestamp": _now()},
                    headers=headers,
                )
            response = await call_next(request)
            response.headers.update(headers)
            return response

    @app.exception_handler(GatewayError)
    async def gateway_error(request: Request, exc: GatewayError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, **exc.to_dict(), "timestamp": _now()},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == 404:
            message = f"Route {request.method} {request.url.path} not found"
        else:
            message = str(exc.detail)
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": message, "code": "http_error", "timestamp": _now()},
        )

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error("%s %s crashed", request.method, request.url.path, exc_info=exc)
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Internal Server Error", "code": "internal_error",
                     "timestamp": _now()},
        )

    @app.get("/")
    async def service_info() -> dict[str, Any]:
        return {
            "service": SERVICE_NAME,
            "version": __version__,
            "status": "running",
            "protocol": gateway.protocol,
            "healthCheck": "/health",
            "timestamp": _now(),
        }

    @app.get("/health")
    async def health() -> dict[str, Any]:
        state = gateway.status()
        return {
            "status": "healthy",
            "service": SERVICE_NAME,
            "version": __version__,
            "protocol": state["protocol"],
            "authenticated": state["authenticated"],
            "state": state["state"],
            "timestamp": _now(),
        }

    @app.get("/status")
    async def status() -> dict[str, Any]:
        state = gateway.status()
        if state["authenticated"]:
            summary = "authenticated"
        elif state["connected"] and gateway.protocol == "xml":
            summary = "connected"
        else:
            summary = "disconnected"
        return {"status": summary, **state, "timestamp": _now()}

    @app.post("/mcp/execute")
    async def execute(request: Request) -> dict[str, Any]:
        body = _parse(ExecuteRequest, await _json_body(request))
        result = await gateway.invoke(body.command, body.parameters)
        return _ok(result, key="result")

    @app.get("/mcp/inventory/{part_number}")
    async def inventory(part_number: str) -> dict[str, Any]:
        return _ok(await gateway.invoke("getInventory", {"partNumber": part_number}))

    @app.post("/mcp/inventory/add")
    async def add_inventory(request: Request) -> dict[str, Any]:
        body = await _json_body(request)
        if settings.validation_enabled:
            body = _parse(AddInventoryRequest, body).model_dump()
        elif not isinstance(body, dict):
            raise ValidationError("Request body must be a JSON object", ["body"])
        return _ok(await gateway.invoke("addInventory", body))

    def _query_route(operation: str):
        async def handler(request: Request) -> dict[str, Any]:
            return _ok(await gateway.invoke(operation, dict(request.query_params)))
        return handler

    app.add_api_route("/mcp/products", _query_route("getProducts"), methods=["GET"], name="products")
    app.add_api_route("/mcp/parts", _query_route("getParts"), methods=["GET"], name="parts")
    app.add_api_route(
        "/mcp/manufacture-orders", _query_route("getManufactureOrders"), methods=["GET"],
        name="manufacture_orders",
    )
    app.add_api_route(
        "/mcp/purchase-orders", _query_route("getPurchaseOrders"), methods=["GET"],
        name="purchase_orders",
    )

    @app.post("/api/login")
    async def login() -> dict[str, Any]:
        return await gateway.login()

    @app.post("/api/logout")
    async def logout() -> dict[str, Any]:
        return await gateway.logout()

    async def passthrough(request: Request) -> JSONResponse:
        _check_action(request)
        body = None
        if request.method == "POST":
            body = await _json_body(request)
            if body is None:
                body = {}
        data = await gateway.forward(
            request.method, request.url.path, params=dict(request.query_params) or None, body=body,
        )
        return JSONResponse(data if data is not None else {"success": True})

    for path, methods in PASSTHROUGH_ROUTES:
        app.add_api_route(path, passthrough, methods=methods, name=f"passthrough:{path}")

    return app
