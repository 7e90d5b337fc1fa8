import os
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy import inspect

from .config import settings
from .db import Base, engine
from .logging import setup_logging, RequestIdMiddleware
from .models import models  # noqa: F401  registers tables on Base.metadata
from .auth.router import router as auth_router
from .routes.assignments import router as assignments_router
from .routes.users import router as users_router
from .routes.stores import router as stores_router
from .routes.maps import router as maps_router
from .routes.vehicles import router as vehicles_router
from .routes.stats import router as stats_router
from .routes.admin import router as admin_router


def create_app() -> FastAPI:
    setup_logging()
    app = FastAPI(title=settings.app_name)

    # Middlewares
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    # Routers
    app.include_router(auth_router)
    app.include_router(assignments_router)
    app.include_router(users_router)
    app.include_router(stores_router)
    app.include_router(maps_router)
    app.include_router(vehicles_router)
    app.include_router(stats_router)
    app.include_router(admin_router)

    @app.get("/", include_in_schema=False)
    def _root():
        return RedirectResponse(url="/docs")

    # Metrics
    Instrumentator().instrument(app).expose(app)

    @app.on_event("startup")
    def _startup():
        print("[startup] Initializing application...")
        # Ensure local SQLite directory exists
        if settings.database_url.startswith("sqlite:///./"):
            os.makedirs("var", exist_ok=True)
        if settings.auto_create_db:
            existing_tables = set(inspect(engine).get_table_names())
            missing = set(Base.metadata.tables.keys()) - existing_tables
            if missing:
                print(f"[startup] Creating {len(missing)} missing tables...")
                Base.metadata.create_all(bind=engine)
                print("[startup] Tables created/verified")
            else:
                print("[startup] All tables already exist")
        print("[startup] Application ready")

    return app


app = create_app()
