import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from analytics import router as analytics_router
from bulletins import router as bulletins_router
from core import db, errors, settings
from preach import router as preach_router
from service_items import router as service_items_router

logging.basicConfig(
    level=settings.log_level(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    # Initialize the DB pool once per process.
    await db.init_pool()
    try:
        yield
    finally:
        await db.close_pool()


app = FastAPI(lifespan=lifespan)

# Allow the frontend dev server (or CORS_ORIGINS) to call this API from the browser.
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(errors.DomainError)
async def domain_error_handler(request: Request, exc: errors.DomainError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("domain_error path=%s code=%s detail=%s", request.url.path, exc.code, exc.message)
    content = {"detail": exc.message, "code": exc.code}
    if exc.details is not None:
        content["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(content))


app.include_router(bulletins_router.router, tags=["bulletins"])
app.include_router(service_items_router.router, tags=["service-items"])
app.include_router(preach_router.router, tags=["preach"])
app.include_router(analytics_router.router, tags=["analytics"])


@app.get("/health")
async def health() -> dict:
    database_ok = await db.check_database_health()
    return {"status": "ok" if database_ok else "degraded", "database": database_ok}


@app.get("/")
def root() -> dict:
    return {"message": "bulletin-preach api"}
