from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends, Request
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text

from gallery_accounts.core.logging import setup_logging, RequestIDMiddleware
from gallery_accounts.core.config import settings
from gallery_accounts.core.redis_client import close_redis
from gallery_accounts.db import get_session
from gallery_accounts.errors import AccountError
from gallery_accounts.routers import account_router, auth_router, profiles_router, recovery_router


setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await close_redis()


app = FastAPI(title="Gallery Accounts", version="1.0.0", lifespan=lifespan)
app.add_middleware(RequestIDMiddleware)

app.include_router(auth_router)
app.include_router(recovery_router)
app.include_router(account_router)
app.include_router(profiles_router)

# Mount dev router only if explicitly enabled
if settings.ENABLE_DEBUG_ENDPOINTS:
    from gallery_accounts.routers import dev_router
    app.include_router(dev_router)


@app.exception_handler(AccountError)
async def account_error_handler(request: Request, exc: AccountError):
    body = {"detail": exc.detail}
    if exc.field:
        body["field"] = exc.field
    return JSONResponse(status_code=exc.status_code, content=body)


def custom_openapi():
    if app.openapi_schema:
        return app.openapi_schema

    openapi_schema = get_openapi(
        title=app.title,
        version=app.version,
        routes=app.routes,
    )

    openapi_schema.setdefault("components", {}).setdefault("securitySchemes", {})["BearerAuth"] = {
        "type": "http",
        "scheme": "bearer",
        "bearerFormat": "JWT",
    }

    app.openapi_schema = openapi_schema
    return app.openapi_schema


app.openapi = custom_openapi


@app.get("/healthz")
def health():
    return {"status": "ok"}


@app.get("/healthz/db")
async def health_db(session: AsyncSession = Depends(get_session)):
    await session.execute(text("SELECT 1"))
    return {"db": "ok"}
