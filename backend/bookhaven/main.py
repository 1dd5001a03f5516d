from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
import logging

from bookhaven.core.config import settings
from bookhaven.core.errors import BookHavenError
from bookhaven.routers import books, categories, recommendations, user_books
from bookhaven.database import init_db

# ----------------------------
# Logging
# ----------------------------
logger = logging.getLogger("bookhaven")
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

app = FastAPI(title="BookHaven API", debug=settings.DEBUG)

cors_origins = settings.cors_origins_list
logger.info("[CORS] allow_origins=%s", cors_origins)

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _with_cors(request: Request, response: JSONResponse) -> JSONResponse:
    # Error responses built here bypass CORSMiddleware
    origin = request.headers.get("origin")
    if origin and origin in cors_origins:
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Credentials"] = "true"
        response.headers["Access-Control-Allow-Methods"] = "*"
        response.headers["Access-Control-Allow-Headers"] = "*"
    return response


@app.exception_handler(BookHavenError)
async def bookhaven_error_handler(request: Request, exc: BookHavenError):
    if exc.status_code >= 500:
        logger.error("[%s] %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
    else:
        logger.info("[%s] %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
    return _with_cors(
        request,
        JSONResponse(status_code=exc.status_code, content={"detail": exc.message}),
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("[DB] %s %s", request.method, request.url.path)
    return _with_cors(
        request,
        JSONResponse(status_code=500, content={"detail": "Database error"}),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("[UNHANDLED] %s %s", request.method, request.url.path)
    return _with_cors(
        request,
        JSONResponse(status_code=500, content={"detail": "Internal Server Error"}),
    )


# ----------------------------
# Routers
# ----------------------------
app.include_router(books.router, prefix="/api")
app.include_router(categories.router, prefix="/api")
app.include_router(recommendations.router, prefix="/api")
app.include_router(user_books.router, prefix="/api")


@app.on_event("startup")
def on_startup() -> None:
    logger.info("[BOOT] environment=%s open_library=%s", settings.ENVIRONMENT, settings.OPEN_LIBRARY_ENABLED)
    init_db()


@app.get("/health")
def health_check():
    return {"status": "ok"}


@app.get("/api/health")
def api_health_check():
    return {"status": "ok"}
