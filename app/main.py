import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1.installments.router import router as installments_router
from app.api.v1.jobs.router import router as jobs_router
from app.api.v1.payment_plans.router import router as payment_plans_router
from app.core.config import settings


def create_app() -> FastAPI:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(title="Payment Plans Backend")

    # CORS: allow frontend to call this API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(payment_plans_router)
    app.include_router(installments_router)
    app.include_router(jobs_router)

    return app


app = create_app()
