"""
Pydantic schemas for request/response validation.
"""
from pydantic import BaseModel, Field, ConfigDict, EmailStr, field_validator
from typing import Optional, List, Dict, Any
from datetime import date, datetime

from fundhub.models.database_models import (
    DocumentType,
    EntityType,
    FundStatus,
    PaymentSchedule,
    ProfileRole,
)


# ---------------------------------------------------------------------------
# Fund Schemas
# ---------------------------------------------------------------------------

class FundCreateRequest(BaseModel):
    """Schema for creating a new fund."""

    name: str = Field(..., min_length=1, max_length=255)
    abbreviation: Optional[str] = None
    status: FundStatus = FundStatus.READY
    closed_at: Optional[date] = None
    address: Optional[str] = None
    par_value: int = Field(1_000_000, gt=0)
    total_cap: Optional[int] = Field(None, ge=0)
    initial_cap: Optional[int] = Field(None, ge=0)
    payment_schedule: PaymentSchedule = PaymentSchedule.LUMP_SUM
    duration: int = Field(5, ge=1)
    min_units: int = Field(1, ge=1)
    gp_id: List[int] = []
    account: Optional[str] = None
    account_bank: Optional[str] = None
    tax_number: Optional[str] = None


class FundUpdateRequest(BaseModel):
    """Partial update; any status value may be set."""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    abbreviation: Optional[str] = None
    status: Optional[FundStatus] = None
    closed_at: Optional[date] = None
    address: Optional[str] = None
    par_value: Optional[int] = Field(None, gt=0)
    total_cap: Optional[int] = Field(None, ge=0)
    initial_cap: Optional[int] = Field(None, ge=0)
    payment_schedule: Optional[PaymentSchedule] = None
    duration: Optional[int] = Field(None, ge=1)
    min_units: Optional[int] = Field(None, ge=1)
    gp_id: Optional[List[int]] = None
    account: Optional[str] = None
    account_bank: Optional[str] = None
    tax_number: Optional[str] = None

    @field_validator("closed_at", mode="before")
    @classmethod
    def _blank_date_is_null(cls, value: Any) -> Any:
        # The admin form sends "" to clear a date
        return None if value == "" else value


class FundResponse(BaseModel):
    """Schema for fund responses."""

    id: int
    name: str
    abbreviation: Optional[str] = None
    status: FundStatus
    closed_at: Optional[date] = None
    address: Optional[str] = None
    par_value: int
    total_cap: Optional[int] = None
    initial_cap: Optional[int] = None
    payment_schedule: PaymentSchedule
    duration: int
    min_units: int
    gp_id: List[int] = []
    account: Optional[str] = None
    account_bank: Optional[str] = None
    tax_number: Optional[str] = None
    member_count: int = 0
    total_units: int = 0
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class FundDisplayResponse(BaseModel):
    """Public view of a fund open for applications."""

    id: int
    name: str
    abbreviation: Optional[str] = None
    status: FundStatus
    par_value: int
    min_units: int

    model_config = ConfigDict(from_attributes=True)


class DocumentStatusItem(BaseModel):
    exists: bool
    latest_version: Optional[int] = None
    latest_generated_at: Optional[datetime] = None


class FundDetailResponse(BaseModel):
    """Member-facing fund detail with GP names and document availability."""

    fund: FundResponse
    gp_names: List[str] = []
    my_units: Optional[int] = None
    documents_status: Dict[str, DocumentStatusItem] = {}


# ---------------------------------------------------------------------------
# Profile / Member Schemas
# ---------------------------------------------------------------------------

class ProfileResponse(BaseModel):
    id: int
    user_id: Optional[str] = None
    name: str
    email: str
    phone: Optional[str] = None
    address: Optional[str] = None
    role: ProfileRole
    entity_type: EntityType
    birth_date: Optional[str] = None
    business_number: Optional[str] = None
    ceo: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class LinkUserRequest(BaseModel):
    profile_id: int


class FundMemberCreateRequest(BaseModel):
    """Add an existing profile to a fund."""

    profile_id: int
    investment_units: int = Field(0, ge=0)
    total_units: int = Field(0, ge=0)


class FundMemberUpdateRequest(BaseModel):
    investment_units: Optional[int] = Field(None, ge=0)
    total_units: Optional[int] = Field(None, ge=0)


class FundMemberResponse(BaseModel):
    id: int
    fund_id: int
    profile_id: int
    name: str
    email: str
    entity_type: EntityType
    role: ProfileRole
    is_gp: bool = False
    investment_units: int
    total_units: int
    deleted_at: Optional[datetime] = None
    created_at: datetime


class MemberDeleteResponse(BaseModel):
    success: bool = True
    message: str
    delete_type: str


class MemberEmailRequest(BaseModel):
    subject: str = Field(..., min_length=1, max_length=255)
    html: str = Field(..., min_length=1)
    profile_ids: Optional[List[int]] = None  # None = every active member


class MemberEmailResult(BaseModel):
    profile_id: int
    email: str
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


class MemberEmailResponse(BaseModel):
    sent: int
    failed: int
    results: List[MemberEmailResult]


# ---------------------------------------------------------------------------
# Survey Schemas
# ---------------------------------------------------------------------------

class SurveyData(BaseModel):
    """Answers collected by the onboarding survey."""

    name: str = Field(..., min_length=1, max_length=255)
    phone: str = Field(..., min_length=1, max_length=50)
    email: EmailStr
    address: str = Field(..., min_length=1)
    entity_type: EntityType
    birth_date: Optional[str] = None
    business_number: Optional[str] = None
    ceo: Optional[str] = None
    investment_units: int = Field(..., ge=1)


class SubmitApplicationRequest(BaseModel):
    fund_id: int
    survey_data: SurveyData


class SubmitApplicationResponse(BaseModel):
    success: bool
    profile_id: int
    fund_member_id: int


# ---------------------------------------------------------------------------
# Template Schemas
# ---------------------------------------------------------------------------

class TemplateCreateRequest(BaseModel):
    """A template edit always produces a new version row."""

    document_type: DocumentType
    content: Dict[str, Any]
    fund_id: Optional[int] = None
    version: Optional[str] = None
    change_type: Optional[str] = Field(None, pattern="^(major|minor|patch)$")
    description: Optional[str] = None
    activate: bool = False


class TemplateResponse(BaseModel):
    id: int
    document_type: DocumentType
    fund_id: Optional[int] = None
    version: str
    content: Dict[str, Any]
    description: Optional[str] = None
    is_active: bool
    created_by: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TemplateSummaryResponse(BaseModel):
    id: int
    document_type: DocumentType
    fund_id: Optional[int] = None
    version: str
    description: Optional[str] = None
    is_active: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ResolvedTemplateResponse(BaseModel):
    """The template a generation would use right now."""

    document_type: DocumentType
    template_id: Optional[int] = None
    version: str
    source: str
    content: Dict[str, Any]


# ---------------------------------------------------------------------------
# Generated Document Schemas
# ---------------------------------------------------------------------------

class GenerateDocumentRequest(BaseModel):
    modified_content: Optional[Dict[str, Any]] = None
    change_description: Optional[str] = None
    assembly_date: Optional[date] = None  # member list reference date
    force: bool = False


class PreviewDocumentRequest(BaseModel):
    modified_content: Optional[Dict[str, Any]] = None
    assembly_date: Optional[date] = None


class GeneratedDocumentSummary(BaseModel):
    id: int
    fund_id: int
    document_type: DocumentType
    version_number: int
    template_id: Optional[int] = None
    template_version: str
    pdf_storage_path: Optional[str] = None
    is_active: bool
    generated_by: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class GeneratedDocumentResponse(GeneratedDocumentSummary):
    generation_context: Dict[str, Any]
    processed_content: Dict[str, Any]


class DuplicateCheckResponse(BaseModel):
    is_duplicate: bool
    message: str


class DocumentDeleteResponse(BaseModel):
    message: str
    delete_type: str


class SignedUrlResponse(BaseModel):
    url: str
    expires_in: int


class DiffChangeSchema(BaseModel):
    path: str
    display_path: str
    change_type: str
    before: Any = None
    after: Any = None


class DiffSummarySchema(BaseModel):
    added: int = 0
    removed: int = 0
    modified: int = 0


class DiffResponse(BaseModel):
    from_version: str
    to_version: str
    changes: List[DiffChangeSchema]
    summary: DiffSummarySchema


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

class HealthCheckResponse(BaseModel):
    """Schema for health check response."""

    status: str
    database: str
    storage: str
    email: str
    timestamp: datetime
