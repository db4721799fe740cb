import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from catalog import create_pack
from config import get_settings
from database import Store, StoreError, get_store
from errors import INTERNAL_ERROR, INVALID_REQUEST, PipelineError
from fulfillment import complete_order
from logging_config import StructuredLogger, clear_request_context, set_request_context, setup_logging
from orders import create_order, purchased_packs
from schemas import (
    COLLECTIONS,
    CompleteOrderRequest,
    CreateOrderRequest,
    CreatePackRequest,
    PackCreated,
    PurchasesRequest,
    SchemaResponse,
)

setup_logging()
logger = StructuredLogger("pinpack.api")

app = FastAPI(title="Pin Pack Marketplace API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().api.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
}


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
    clear_request_context()
    set_request_context(request_id=request_id, method=request.method, path=request.url.path)
    response = await call_next(request)
    response.headers.update(SECURITY_HEADERS)
    response.headers["X-Request-ID"] = request_id
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = first.get("msg", "Invalid request body")
    return JSONResponse(
        status_code=400,
        content={"error": f"{where}: {message}" if where else message, "code": INVALID_REQUEST},
    )


# ---------- Utilities ----------

def serialize_doc(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not doc:
        return doc
    out = {}
    for k, v in doc.items():
        if isinstance(v, datetime):
            if v.tzinfo is None:
                v = v.replace(tzinfo=timezone.utc)
            out[k] = v.astimezone(timezone.utc).isoformat()
        else:
            out[k] = v
    return out


def error_response(exc: PipelineError, **extra: Any) -> JSONResponse:
    content: Dict[str, Any] = {"error": exc.message, "code": exc.code}
    content.update({k: v for k, v in extra.items() if v is not None})
    return JSONResponse(status_code=exc.status_code, content=content)


def internal_error(exc: Exception, event: str) -> JSONResponse:
    logger.exception(event, error=str(exc))
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "code": INTERNAL_ERROR, "details": str(exc)},
    )


# ---------- Basic Routes ----------

@app.get("/")
def read_root():
    return {"message": "Pin Pack Marketplace API is running"}


@app.get("/test")
def test_database(store: Store = Depends(get_store)):
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if get_settings().db.url else "❌ Not Set",
        "database_name": get_settings().db.name,
        "connection_status": "Not Connected",
        "collections": [],
    }
    if not store.configured:
        return response
    try:
        response["collections"] = store.ping()[:10]
        response["database"] = "✅ Connected & Working"
        response["connection_status"] = "Connected"
    except StoreError as e:
        response["database"] = f"⚠️  Connected but Error: {e.message[:50]}"
    return response


# ---------- Schema Introspection ----------

@app.get("/schema", response_model=List[SchemaResponse])
def get_schema():
    return [
        SchemaResponse(name=model.__name__, collection=collection, schema=model.model_json_schema())
        for model, collection in COLLECTIONS.items()
    ]


# ---------- Catalog ----------

@app.post("/api/packs/create", status_code=201, response_model=PackCreated)
def create_pack_route(body: CreatePackRequest, store: Store = Depends(get_store)):
    try:
        pack_id = create_pack(store, body)
    except PipelineError as exc:
        return error_response(exc, step=exc.step)
    except Exception as exc:
        return internal_error(exc, "pack_create_crashed")
    return PackCreated(id=pack_id)


# ---------- Orders ----------

@app.post("/api/orders/create")
def create_order_route(body: CreateOrderRequest, store: Store = Depends(get_store)):
    try:
        order = create_order(store, body)
    except PipelineError as exc:
        return error_response(exc, details=exc.detail)
    except Exception as exc:
        return internal_error(exc, "order_create_crashed")
    return {"success": True, "order": serialize_doc(order)}


@app.post("/api/orders/complete")
def complete_order_route(body: CompleteOrderRequest, store: Store = Depends(get_store)):
    """Record a PayPal-confirmed payment. The payment itself was verified by the caller."""
    try:
        result = complete_order(store, body)
    except PipelineError as exc:
        return error_response(exc, details=exc.detail)
    except Exception as exc:
        return internal_error(exc, "order_complete_crashed")
    return {
        "success": True,
        "order": serialize_doc(result.order),
        "message": "Order completed successfully",
    }


@app.post("/api/purchases")
def purchases_route(body: PurchasesRequest, store: Store = Depends(get_store)):
    try:
        packs = purchased_packs(store, body)
    except PipelineError as exc:
        return error_response(exc)
    except Exception as exc:
        return internal_error(exc, "purchases_crashed")
    return {"packs": [serialize_doc(p) for p in packs]}


if __name__ == "__main__":
    import uvicorn

    settings = get_settings().api
    uvicorn.run(app, host=settings.host, port=settings.port)
