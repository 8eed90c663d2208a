import logging
import uuid
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import settings
from database import close_store, init_store
from deps import CurrentUser, get_current_user_optional
from helpers import format_date
from routers import announcements, assignments, auth, files, grading, submissions
from storage import init_object_storage

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

RESOURCE_GROUPS = {
    "auth": "/auth",
    "assignments": "/assignments",
    "submissions": "/submissions",
    "grading": "/grading",
    "announcements": "/announcements",
    "files": "/files",
}

app = FastAPI(title=settings.APP_NAME, version=settings.APP_VERSION)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = req_id
    if settings.is_development:
        logger.info("%s %s", request.method, request.url.path)
    response = await call_next(request)
    response.headers["X-Request-ID"] = req_id
    return response


# ----------------------
# Error envelope
# ----------------------
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    content = {"success": False, "error": str(exc.detail)}
    errors = getattr(exc, "errors", None)
    if errors:
        content["errors"] = errors
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")),
         "message": err.get("msg", "Invalid value")}
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"success": False, "error": "Validation error", "errors": errors})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    message = str(exc) if settings.is_development else "Internal server error"
    return JSONResponse(status_code=500, content={"success": False, "error": message})


@app.on_event("startup")
def open_connections():
    # MongoClient connects lazily; no database round-trip here
    store = init_store()
    init_object_storage(store.db)


@app.on_event("shutdown")
def close_connections():
    close_store()


# ----------------------
# Basic routes
# ----------------------
@app.get("/health")
def health():
    return {"success": True, "data": {"status": "ok", "environment": settings.ENV, "timestamp": format_date()}}


@app.get(settings.API_PREFIX)
def api_index(current: Optional[CurrentUser] = Depends(get_current_user_optional)):
    data = {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "endpoints": {name: f"{settings.API_PREFIX}{path}" for name, path in RESOURCE_GROUPS.items()},
    }
    if current is not None:
        data["role"] = current.role
    return {"success": True, "data": data}


for module in (auth, assignments, submissions, grading, announcements, files):
    app.include_router(module.router, prefix=settings.API_PREFIX)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
