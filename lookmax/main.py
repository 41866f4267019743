import logging
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import Depends, FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__, database, models, schemas, services
from .config import settings
from .errors import ApiError
from .security import AdminPolicy, get_admin_policy

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    models.Base.metadata.create_all(bind=database.engine)
    logger.info("Lookmax backend started, database: %s", database.engine.url)
    yield


app = FastAPI(title="Lookmax", version=__version__, lifespan=lifespan)


limiter = Limiter(key_func=get_remote_address, enabled=not settings.testing)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.middleware("http")
async def cors(request: Request, call_next):
    # preflight отвечаем сразу, на любой путь
    if request.method == "OPTIONS":
        response = Response(status_code=200)
    else:
        response = await call_next(request)
    response.headers.update(CORS_HEADERS)
    return response


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    # ID для сопоставления ответа с записью в логе
    correlation_id = str(uuid4())
    logger.warning(
        "%s %s -> %d %s (%s) [%s]",
        request.method,
        request.url.path,
        exc.status,
        exc.message,
        exc.code,
        correlation_id,
    )
    return PlainTextResponse(
        exc.message,
        status_code=exc.status,
        headers={"X-Correlation-ID": correlation_id},
    )


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError):
    correlation_id = str(uuid4())
    logger.error(
        "Store error on %s %s [%s]",
        request.method,
        request.url.path,
        correlation_id,
        exc_info=exc,
    )
    # только сообщение драйвера, без SQL и параметров
    message = str(exc.orig) if getattr(exc, "orig", None) else str(exc)
    return JSONResponse(
        status_code=500,
        content={"error": message},
        headers={"X-Correlation-ID": correlation_id},
    )


@app.exception_handler(StarletteHTTPException)
async def method_not_allowed_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 405:
        return PlainTextResponse("Method not allowed", status_code=405)
    return await http_exception_handler(request, exc)


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/", response_model=schemas.Snapshot)
def snapshot(db: Session = Depends(database.get_db)):
    return services.get_snapshot(db)


@app.post("/", response_class=PlainTextResponse)
@limiter.limit(settings.post_rate_limit)
async def submit(
    request: Request,
    db: Session = Depends(database.get_db),
    policy: AdminPolicy = Depends(get_admin_policy),
):
    try:
        data = await request.json()
    except ValueError:
        raise ApiError(code="invalid_json", message="Invalid JSON", status=400)
    # запросы к БД синхронные, поэтому выполняем их в пуле потоков
    message = await run_in_threadpool(services.dispatch, db, data, policy)
    return PlainTextResponse(message)
