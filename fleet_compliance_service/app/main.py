# FastAPI Application Entry Point
import logging
from fastapi import FastAPI

# Configuration and Observability
from fleet_compliance_service.app.config import settings
from fleet_compliance_service.app.observability import setup_opentelemetry, logger

# Initialize OpenTelemetry
setup_opentelemetry(service_name=settings.SERVICE_NAME_API)

# Import instrumentors after OTel SDK is initialized
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.pymongo import PymongoInstrumentor

# Database connection
from fleet_compliance_service.infrastructure.database.connection import connect_to_mongo, close_mongo_connection

# API Routers
from fleet_compliance_service.app.api.v1.endpoints import health as health_router
from fleet_compliance_service.app.api.v1.endpoints import vehicles as vehicles_router

# --- FastAPI Application Instance ---
app = FastAPI(
    title="Fleet Compliance Service",
    description="Vehicle document verification, approval cascade and platform visibility.",
    version="0.1.0"
)

# --- Event Handlers for DB Connection & OTel Instrumentation ---
@app.on_event("startup")
async def startup_event():
    logger.info("FastAPI application startup...")
    try:
        await connect_to_mongo()
        logger.info("MongoDB connection established.")

        PymongoInstrumentor().instrument()
        logger.info("PyMongo instrumentation complete.")
    except Exception as e:
        logger.error(f"Failed during startup: {e}", exc_info=True)
        # Requests will retry the connection through get_db.

@app.on_event("shutdown")
async def shutdown_event():
    logger.info("FastAPI application shutdown...")
    close_mongo_connection()
    logger.info("MongoDB connection closed.")

FastAPIInstrumentor.instrument_app(app)
logger.info("FastAPI instrumentation complete.")

# Include API Routers
app.include_router(health_router.router)
app.include_router(vehicles_router.router, prefix="/api/v1/vehicles", tags=["Vehicle Approval"])

logger.info("API routers included. Application setup complete.")

# To run: uvicorn fleet_compliance_service.app.main:app --reload --port 8000
