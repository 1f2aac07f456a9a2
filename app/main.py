from fastapi import FastAPI

from app.api.v1.router import router as v1_router
from app.core.telemetry import configure_logging, setup_telemetry

configure_logging()

app = FastAPI(title="Locality Hub API", version="0.1.0")

setup_telemetry(app)
app.include_router(v1_router)
