import logging
import time

import auth
import crud
import database
import models
import qr_utils
import schemas
import uvicorn
from config import Settings
from fastapi import Body, Depends, FastAPI, HTTPException, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from ratelimit import SlidingWindowRateLimiter, client_address, rate_limited
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger("urlshort")
http_logger = logging.getLogger("urlshort.http")

ERROR_RESPONSES = {status: {"model": schemas.ErrorOut} for status in (400, 404, 500)}


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def public_base_url(request: Request, settings: Settings = Depends(get_settings)) -> str:
    return settings.public_base_url or str(request.base_url).rstrip("/")


# Looked up inside the endpoint rather than as a dependency, so the pooled
# connection is checked out and released within one worker thread.
def find_link(db, code: str) -> models.ShortUrl:
    if not schemas.is_valid_code(code):
        raise HTTPException(status_code=400, detail="Invalid short code")
    link = crud.get_link(db, code)
    if not link:
        logger.warning("Short URL not found: %s", code)
        raise HTTPException(status_code=404, detail="Short URL not found")
    return link


# ---------- Error rendering ----------
def _error(status_code: int, message: str, headers=None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message}, headers=headers)


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return _error(exc.status_code, str(exc.detail), getattr(exc, "headers", None))


async def validation_error_handler(request: Request, exc: RequestValidationError):
    problems = "; ".join(
        f"{'.'.join(str(part) for part in err['loc'] if part != 'body')}: {err['msg']}".lstrip(": ")
        for err in exc.errors()
    )
    return _error(400, f"Invalid request: {problems}")


async def code_taken_handler(request: Request, exc: crud.CodeTakenError):
    logger.warning("Custom code rejected: %s", exc.code)
    return _error(409, "Custom code already in use")


async def code_generation_handler(request: Request, exc: crud.CodeGenerationError):
    logger.error("Create short URL failed: %s", exc)
    return _error(500, f"Server error: {exc}")


async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return _error(500, "Server error: database operation failed")


async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error(500, "Internal server error")


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings.from_env()

    # --- Logging ---
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
    )

    # --- DB engine, pool and tables ---
    engine = database.create_db_engine(settings)
    models.Base.metadata.create_all(bind=engine)

    app = FastAPI(
        title="URL Shortener",
        description="Shorten long URLs, redirect through short codes and track access statistics.",
        version="1.0.0",
    )
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = database.create_session_factory(engine)
    app.state.rate_limiter = SlidingWindowRateLimiter(
        max_requests=settings.rate_limit_max,
        window_seconds=settings.rate_limit_window_seconds,
    )
    if not app.state.rate_limiter.is_enabled:
        logger.warning("Rate limiting is disabled")

    # --- CORS (open in dev, same-origin otherwise) ---
    origins = ["*"] if settings.environment == "dev" else [o for o in [settings.public_base_url] if o]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        http_logger.info("%s %s from %s", request.method, request.url.path, client_address(request))
        response = await call_next(request)
        http_logger.info(
            "%s %s -> %d (%.1fms)",
            request.method, request.url.path, response.status_code, (time.perf_counter() - start) * 1000,
        )
        return response

    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(crud.CodeTakenError, code_taken_handler)
    app.add_exception_handler(crud.CodeGenerationError, code_generation_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)

    register_routes(app)
    return app


def register_routes(app: FastAPI) -> None:
    @app.get("/", include_in_schema=False)
    def welcome():
        return {"message": "Welcome to the URL Shortening API"}

    # Health check (useful for uptime monitors & load balancers)
    @app.get("/health", response_model=schemas.HealthOut, include_in_schema=False)
    def health(db=Depends(database.get_db), settings: Settings = Depends(get_settings)):
        db.execute(text("SELECT 1"))
        return {"status": "ok", "env": settings.environment, "database": "ok"}

    # ---------- API ----------
    @app.post(
        "/shorten",
        response_model=schemas.UrlCreated,
        status_code=201,
        responses={**ERROR_RESPONSES, 409: {"model": schemas.ErrorOut}},
        dependencies=[Depends(rate_limited)],
    )
    def create_short_url(
        link_in: schemas.UrlCreate,
        response: Response,
        db=Depends(database.get_db),
        settings: Settings = Depends(get_settings),
        base_url: str = Depends(public_base_url),
    ):
        if not schemas.is_valid_url(link_in.url):
            raise HTTPException(status_code=400, detail="A valid URL is required (e.g., https://example.com)")
        # An empty custom code means "generate one"
        custom_code = link_in.custom_code or None
        if custom_code is not None and not schemas.is_valid_code(custom_code):
            raise HTTPException(status_code=400, detail="Custom code must be 4-10 alphanumeric characters")

        link, created = crud.create_link(
            db,
            link_in.url,
            custom_code=custom_code,
            expires_in_days=link_in.expires_in_days,
            code_length=settings.short_code_length,
        )
        fields = schemas.record_fields(link, base_url)
        if created:
            logger.info("Created short URL: %s", fields["short_url"])
        else:
            response.status_code = 200
            logger.info("Returning existing short URL %s for %s", link.short_code, link.original_url)
        return schemas.UrlCreated(**fields, qr_code=qr_utils.qr_data_url(fields["short_url"]))

    @app.get("/shorten/{code}", response_model=schemas.UrlDetails, responses=ERROR_RESPONSES)
    def get_url_details(code: str, db=Depends(database.get_db), base_url: str = Depends(public_base_url)):
        fields = schemas.record_fields(find_link(db, code), base_url)
        return schemas.UrlDetails(**fields, qr_code=qr_utils.qr_data_url(fields["short_url"]))

    @app.get("/shorten/{code}/stats", response_model=schemas.UrlStats, responses=ERROR_RESPONSES)
    def get_url_stats(code: str, db=Depends(database.get_db), base_url: str = Depends(public_base_url)):
        link = find_link(db, code)
        logs = crud.get_access_logs(db, link)
        return schemas.UrlStats(
            **schemas.record_fields(link, base_url),
            access_logs=[schemas.AccessLogOut.model_validate(log) for log in logs],
        )

    @app.put(
        "/shorten/{code}",
        response_model=schemas.UrlOut,
        responses={**ERROR_RESPONSES, 401: {"model": schemas.ErrorOut}},
        dependencies=[Depends(rate_limited)],
    )
    def update_url(
        code: str,
        link_in: schemas.UrlUpdate,
        db=Depends(database.get_db),
        settings: Settings = Depends(get_settings),
        base_url: str = Depends(public_base_url),
    ):
        if not schemas.is_valid_url(link_in.url):
            raise HTTPException(status_code=400, detail="A valid URL is required")
        if not auth.check_api_key(link_in.api_key, settings.api_key):
            raise HTTPException(status_code=401, detail="Invalid API key")

        link = crud.update_link(db, code, link_in.url)
        if not link:
            logger.warning("Short URL not found for update: %s", code)
            raise HTTPException(status_code=404, detail="Short URL not found")
        logger.info("Updated short URL %s -> %s", code, link.original_url)
        return schemas.UrlOut(**schemas.record_fields(link, base_url))

    @app.delete(
        "/shorten/{code}",
        status_code=204,
        responses={status: {"model": schemas.ErrorOut} for status in (401, 404, 500)},
        dependencies=[Depends(rate_limited)],
    )
    def delete_url(
        code: str,
        body: schemas.UrlDelete | None = Body(default=None),
        db=Depends(database.get_db),
        settings: Settings = Depends(get_settings),
    ):
        if not auth.check_api_key(body.api_key if body else None, settings.api_key):
            raise HTTPException(status_code=401, detail="Invalid API key")

        if not crud.delete_link(db, code):
            logger.warning("Short URL not found for deletion: %s", code)
            raise HTTPException(status_code=404, detail="Short URL not found")
        logger.info("Deleted short URL: %s", code)
        return Response(status_code=204)

    # Catch-all redirect; keep this last so it never shadows the routes above
    @app.get("/{code}", include_in_schema=False)
    def redirect_to_original_url(code: str, request: Request, db=Depends(database.get_db)):
        link = find_link(db, code)
        if crud.is_expired(link):
            logger.warning("Short URL expired: %s", code)
            raise HTTPException(status_code=410, detail="Short URL has expired")

        # Read before the commit in record_access expires the instance
        target = link.original_url
        crud.record_access(db, link, client_address(request))
        logger.info("Redirecting %s to %s", code, target)
        return RedirectResponse(url=target, status_code=301)


def run() -> None:
    settings = Settings.from_env()
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
