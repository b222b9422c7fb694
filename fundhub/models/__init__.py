"""Database and schema models for FundHub."""
from fundhub.models.database_models import (
    Fund,
    Profile,
    FundMember,
    DocumentTemplate,
    GeneratedDocument,
    FundStatus,
    PaymentSchedule,
    ProfileRole,
    EntityType,
    DocumentType,
)
from fundhub.models.schemas import (
    FundCreateRequest,
    FundResponse,
    ProfileResponse,
    TemplateResponse,
    GeneratedDocumentResponse,
    DiffResponse,
    HealthCheckResponse,
)

__all__ = [
    # Database models
    "Fund",
    "Profile",
    "FundMember",
    "DocumentTemplate",
    "GeneratedDocument",
    "FundStatus",
    "PaymentSchedule",
    "ProfileRole",
    "EntityType",
    "DocumentType",
    # Pydantic schemas
    "FundCreateRequest",
    "FundResponse",
    "ProfileResponse",
    "TemplateResponse",
    "GeneratedDocumentResponse",
    "DiffResponse",
    "HealthCheckResponse",
]
