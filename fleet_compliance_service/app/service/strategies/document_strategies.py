from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional

from fleet_compliance_service.app.config import settings
from fleet_compliance_service.app.service.exceptions import ConfigurationError


DOCUMENT_LABELS: Dict[str, str] = {
    "mot_certificate": "MOT Certificate",
    "private_hire_license": "Private Hire License",
    "registration_document": "V5C Registration Document",
    "insurance_certificate": "Insurance Certificate",
}


def label_for(document_type: str) -> str:
    """Human-readable name for a document type key, falling back to the key itself."""
    return DOCUMENT_LABELS.get(document_type, document_type)


@dataclass(frozen=True)
class DocumentTypeSpec:
    key: str
    required: bool

    @property
    def label(self) -> str:
        return label_for(self.key)


class DocumentRequirementStrategy(ABC):
    @abstractmethod
    def requirements(self) -> List[DocumentTypeSpec]:
        """
        Returns the document types a vehicle is checked against, in display order.
        Example: [DocumentTypeSpec("mot_certificate", required=True), ...]
        """
        pass


class ConfiguredRequirementStrategy(DocumentRequirementStrategy):
    """Requirements taken from a key -> required mapping, normally the DOCUMENT_REQUIREMENTS setting."""

    def __init__(self, requirements: Optional[Mapping[str, bool]] = None):
        raw = settings.DOCUMENT_REQUIREMENTS if requirements is None else requirements
        if not raw:
            raise ConfigurationError("DOCUMENT_REQUIREMENTS must name at least one document type.")
        specs: List[DocumentTypeSpec] = []
        for key, required in raw.items():
            if not isinstance(key, str) or not key.strip():
                raise ConfigurationError(f"Invalid document type key {key!r} in DOCUMENT_REQUIREMENTS.")
            if not isinstance(required, bool):
                raise ConfigurationError(f"Required flag for '{key}' must be a boolean, got {required!r}.")
            specs.append(DocumentTypeSpec(key=key, required=required))
        self._specs = specs

    def requirements(self) -> List[DocumentTypeSpec]:
        return list(self._specs)


def get_document_strategy() -> DocumentRequirementStrategy:
    return ConfiguredRequirementStrategy()
