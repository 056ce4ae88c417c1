# Application Configuration using Pydantic BaseSettings
from pydantic_settings import BaseSettings
from typing import Dict, Optional

class AppSettings(BaseSettings):
    # MongoDB
    MONGO_DETAILS: str = "mongodb://mongo:27017"
    DB_NAME: str = "fleet_compliance_db"

    # Collections: the authoritative vehicle records and the two document mirrors
    VEHICLES_COLLECTION: str = "vehicles"
    DOCUMENTS_LEDGER_COLLECTION: str = "documents"
    VEHICLE_DOCUMENTS_COLLECTION: str = "vehicle_documents"

    # Verification rules
    EXPIRY_WARNING_DAYS: int = 30
    # Document type key -> required flag. Overridable with a JSON env value.
    DOCUMENT_REQUIREMENTS: Dict[str, bool] = {
        "mot_certificate": True,
        "private_hire_license": True,
        "registration_document": True,
        "insurance_certificate": False,
    }
    DEFAULT_ACTOR_ID: str = "admin"

    # Observability
    LOG_LEVEL: str = "INFO"
    OTEL_EXPORTER_OTLP_TRACES_ENDPOINT: Optional[str] = None
    OTEL_EXPORTER_OTLP_METRICS_ENDPOINT: Optional[str] = None
    OTEL_CONSOLE_EXPORT: bool = False
    SERVICE_NAME_API: str = "fleet-compliance-api"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

# Instantiate settings to be imported by other modules
settings = AppSettings()

import logging
logger = logging.getLogger(__name__)
# Avoid logging the full settings dump; connection strings may carry credentials.
logger.info("Application settings module initialized.")
