import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .core.settings import settings
from .core.logging import setup_logging
from .db import Base, SessionLocal, engine
from .errors import DomainError
from . import models  # noqa: F401  registers tables on Base
from .seed import ensure_first_admin, seed_demo_data
from .routers import admin, auth, drivers, orders, public

setup_logging()
logger = logging.getLogger("delivery.api")

app = FastAPI(title="Delivery Order Service")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s rejected (%s): %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.on_event("startup")
def on_startup():
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        ensure_first_admin(db)
        if settings.SEED_DEMO_DATA:
            seed_demo_data(db)
    finally:
        db.close()


@app.get("/health")
def health():
    return {"status":"ok"}

app.include_router(auth.router, prefix="/auth", tags=["auth"])
app.include_router(orders.router, prefix="/orders", tags=["orders"])
app.include_router(public.router, prefix="/public", tags=["public"])
app.include_router(drivers.router, prefix="/driver", tags=["driver"])
app.include_router(admin.router, prefix="/admin", tags=["admin"])
