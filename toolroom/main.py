from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from toolroom.config import settings
from toolroom.database import db
from toolroom.api import requisitions, purchase_orders, catalog, stream, dashboard
from toolroom.api.errors import register_error_handlers

# Setup Logging
logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    db.connect()
    yield
    db.close()

app = FastAPI(
    title="Toolroom Requisitions API",
    description="Purchase requisition approvals and PO bundling for the tool crib",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

# Router Registration
app.include_router(requisitions.router)
app.include_router(purchase_orders.router)
app.include_router(catalog.router)
app.include_router(stream.router)
app.include_router(dashboard.router)

# Health Check
@app.get("/health")
async def health_check():
    return {"status": "ok", "environment": settings.ENVIRONMENT}

if __name__ == "__main__":
    uvicorn.run("toolroom.main:app", host="0.0.0.0", port=8000, reload=True)
