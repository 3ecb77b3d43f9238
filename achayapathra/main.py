import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from dotenv import load_dotenv
from loguru import logger
from sqlalchemy.engine import Engine

load_dotenv()

from achayapathra.db.db import create_db_engine, init_db  # noqa: E402
from achayapathra.errors import DonationError  # noqa: E402
from achayapathra.routers import admin, claims, donations, events, profile  # noqa: E402
from achayapathra.safety.signals import HttpVisionSignalProvider  # noqa: E402


def create_app(engine: Optional[Engine] = None) -> FastAPI:
    engine = engine or create_db_engine()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        init_db(engine)
        logger.info("Database ready at {}", engine.url.render_as_string(hide_password=True))
        yield

        provider = getattr(app.state, "signal_provider", None)
        if isinstance(provider, HttpVisionSignalProvider):
            provider.close()
        engine.dispose()

    app = FastAPI(title="Achayapathra API", lifespan=lifespan)
    app.state.engine = engine

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=os.getenv("CORS_ORIGINS", "http://localhost:3000").split(","),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(DonationError)
    async def donation_error_handler(request: Request, exc: DonationError):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    # Register routers
    app.include_router(profile.router, prefix="/profile", tags=["Profile"])
    app.include_router(donations.router, prefix="/donations", tags=["Donations"])
    app.include_router(claims.router, prefix="/claims", tags=["Claims"])
    app.include_router(events.router, prefix="/events", tags=["Events"])
    app.include_router(admin.router, tags=["Admin"])

    @app.get("/")
    def root():
        return {"status": "ok"}

    return app


app = create_app()
