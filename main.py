import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Callable, List, Optional

from fastapi import APIRouter, Body, Depends, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo import MongoClient
from pymongo.errors import PyMongoError
from starlette.concurrency import run_in_threadpool

from auth import AuthGate
from config import Settings, configure_logging
from content_store import DEFAULT_PAGE_SIZE, ContentStore
from database import connect, ensure_indexes
from errors import ApiError, DeliveryError, NotFound, StorageUnavailable, ValidationError
from notifications import Notifier
from schemas import ContentKey, LoginRequest, LoginResponse, Message, MessageCreate, MessagePage, MessageRef

logger = logging.getLogger(__name__)

router = APIRouter()


# Dependencies

def get_store(request: Request) -> ContentStore:
    return request.app.state.store


def require_admin(request: Request, authorization: Optional[str] = Header(None)) -> None:
    request.app.state.auth.authorize(authorization)


def content_key(key: str) -> ContentKey:
    try:
        return ContentKey(key)
    except ValueError:
        raise NotFound(f"Unknown content key: {key}")


# Routes
@router.get("/")
def root():
    return {"message": "Content API running"}


@router.get("/test")
def test_database(request: Request):
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_name": request.app.state.settings.database_name,
        "collections": [],
    }
    try:
        response["collections"] = request.app.state.db.list_collection_names()[:10]
        response["database"] = "✅ Connected & Working"
    except PyMongoError as e:
        logger.warning("Database status check failed: %s", e)
        response["database"] = "⚠️ Connected but Error"
    return response


# Auth endpoints
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, payload: Optional[LoginRequest] = None):
    password = payload.password if payload else None
    token = request.app.state.auth.issue_token(password)
    return {"ok": True, "token": token}


# Content endpoints
@router.get("/content")
def list_content_keys():
    return {"keys": [k.value for k in ContentKey]}


@router.get("/content/{key}")
def read_content(key: str, store: ContentStore = Depends(get_store)):
    return store.get_document(content_key(key))


@router.post("/content/{key}", dependencies=[Depends(require_admin)])
def write_content(key: str, value: Any = Body(...), store: ContentStore = Depends(get_store)):
    store.put_document(content_key(key), value)
    return {"ok": True}


# Message endpoints
@router.get("/messages", response_model=List[Message], dependencies=[Depends(require_admin)])
def list_messages(store: ContentStore = Depends(get_store)):
    return store.all_messages()


@router.get("/messages/paginated", response_model=MessagePage, dependencies=[Depends(require_admin)])
def paginated_messages(page: int = 1, limit: int = DEFAULT_PAGE_SIZE, store: ContentStore = Depends(get_store)):
    return store.list_messages(page, limit)


@router.post("/messages")
def create_message(payload: MessageCreate, store: ContentStore = Depends(get_store)):
    item = store.append_message(payload.name, str(payload.email), payload.message)
    return {"ok": True, "item": item}


@router.post("/messages/mark-read", dependencies=[Depends(require_admin)])
def mark_message_read(payload: MessageRef, store: ContentStore = Depends(get_store)):
    store.mark_read(payload.id)
    return {"ok": True, "message": "Message marked as read"}


@router.post("/messages/delete", dependencies=[Depends(require_admin)])
def delete_message(payload: MessageRef, store: ContentStore = Depends(get_store)):
    store.delete_message(payload.id)
    return {"ok": True, "message": "Message deleted"}


# Contact form: save first, then notify
@router.post("/send-message")
async def send_message(request: Request, payload: MessageCreate):
    store: ContentStore = request.app.state.store
    item = await run_in_threadpool(store.append_message, payload.name, str(payload.email), payload.message)
    try:
        await request.app.state.notifier.notify_contact(item)
    except DeliveryError as e:
        logger.warning("Message %s saved but notification failed: %s", item.id, e.message)
        return JSONResponse(
            status_code=202,
            content={
                "ok": True,
                "item": item.model_dump(mode="json"),
                "notified": False,
                "error": e.kind,
                "message": "Message saved, but the notification email could not be sent",
            },
        )
    return {"ok": True, "item": item, "notified": True}


# Error handlers

async def api_error_handler(request: Request, exc: ApiError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def validation_error_handler(request: Request, exc: RequestValidationError):
    fields = sorted({str(err["loc"][-1]) for err in exc.errors() if err.get("loc")})
    message = f"Invalid or missing fields: {', '.join(fields)}" if fields else None
    return await api_error_handler(request, ValidationError(message))


async def storage_error_handler(request: Request, exc: PyMongoError):
    logger.error("Storage failure on %s %s: %r", request.method, request.url.path, exc)
    return await api_error_handler(request, StorageUnavailable())


def create_app(
    settings: Optional[Settings] = None,
    client: Optional[MongoClient] = None,
    notifier: Optional[Notifier] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> FastAPI:
    """
    Build the application. The database is opened and legacy messages are
    imported during startup; an unreachable database aborts startup.
    """
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.log_level)
        db = connect(settings, client)
        ensure_indexes(db)
        store = ContentStore(db, settings.data_dir, clock=clock)
        store.import_legacy_messages()

        app.state.settings = settings
        app.state.db = db
        app.state.store = store
        app.state.auth = AuthGate(settings, clock=clock)
        app.state.notifier = notifier or Notifier(settings)
        logger.info("Content API ready")
        yield
        if client is None:
            db.client.close()

    app = FastAPI(title="Content API", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(PyMongoError, storage_error_handler)

    app.include_router(router)
    app.include_router(router, prefix="/api", include_in_schema=False)
    return app


_app: Optional[FastAPI] = None


def __getattr__(name: str):
    # `uvicorn main:app` builds the app from the environment on first access
    global _app
    if name != "app":
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    if _app is None:
        _app = create_app()
    return _app


if __name__ == "__main__":
    import uvicorn
    settings = Settings.from_env()
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port)
