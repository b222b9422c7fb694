"""
SQLAlchemy ORM models for the FundHub database.

Every table carries a ``brand`` column; queries are always filtered on
``settings.BRAND``.
"""
from sqlalchemy import (
    Column,
    Integer,
    BigInteger,
    String,
    Text,
    Date,
    DateTime,
    ForeignKey,
    Boolean,
    Enum as SQLEnum,
    JSON,
    Index,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
import enum

from fundhub.database import Base
from fundhub.config import settings


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _current_brand() -> str:
    return settings.BRAND


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


# Enums
class FundStatus(str, enum.Enum):
    """Lifecycle status of a fund. Transitions are not enforced."""

    READY = "ready"
    PROCESSING = "processing"
    APPLIED = "applied"
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"


class PaymentSchedule(str, enum.Enum):
    LUMP_SUM = "lump_sum"
    CAPITAL_CALL = "capital_call"


class ProfileRole(str, enum.Enum):
    USER = "USER"
    ADMIN = "ADMIN"


class EntityType(str, enum.Enum):
    INDIVIDUAL = "individual"
    CORPORATE = "corporate"


class DocumentType(str, enum.Enum):
    """Generated document types."""

    LPA = "lpa"
    LPA_CONSENT_FORM = "lpa_consent_form"
    PERSONAL_INFO_CONSENT_FORM = "personal_info_consent_form"
    MEMBER_LIST = "member_list"

    @property
    def soft_delete(self) -> bool:
        """Member lists are dated snapshots and are only ever deactivated."""
        return self is DocumentType.MEMBER_LIST


document_type_enum = SQLEnum(DocumentType, name="documenttype", values_callable=_enum_values)


# Models
class Fund(Base):
    """Venture fund (an LPA-governed partnership)."""

    __tablename__ = "funds"

    id = Column(Integer, primary_key=True, index=True)
    brand = Column(String(50), nullable=False, default=_current_brand, index=True)
    name = Column(String(255), nullable=False)
    abbreviation = Column(String(100), nullable=True)
    status = Column(
        SQLEnum(FundStatus, name="fundstatus", values_callable=_enum_values),
        nullable=False,
        default=FundStatus.READY,
    )
    closed_at = Column(Date, nullable=True)  # closing date, required for the LPA
    address = Column(Text, nullable=True)

    # Capital terms (KRW)
    par_value = Column(BigInteger, nullable=False, default=1_000_000)  # amount per unit
    total_cap = Column(BigInteger, nullable=True)
    initial_cap = Column(BigInteger, nullable=True)
    payment_schedule = Column(
        SQLEnum(PaymentSchedule, name="paymentschedule", values_callable=_enum_values),
        nullable=False,
        default=PaymentSchedule.LUMP_SUM,
    )
    duration = Column(Integer, nullable=False, default=5)  # years
    min_units = Column(Integer, nullable=False, default=1)

    # Profile ids of the general partners
    gp_id = Column(JSON, nullable=False, default=list)

    # Account info
    account = Column(String(100), nullable=True)
    account_bank = Column(String(100), nullable=True)
    tax_number = Column(String(50), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    members = relationship("FundMember", back_populates="fund", cascade="all, delete-orphan")
    documents = relationship("GeneratedDocument", back_populates="fund", cascade="all, delete-orphan")


class Profile(Base):
    """Member profile. ``user_id`` is NULL until a matching account signs up."""

    __tablename__ = "profiles"
    __table_args__ = (UniqueConstraint("brand", "email", name="uq_profiles_brand_email"),)

    id = Column(Integer, primary_key=True, index=True)
    brand = Column(String(50), nullable=False, default=_current_brand, index=True)
    user_id = Column(String(255), nullable=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, index=True)
    phone = Column(String(50), nullable=True)
    address = Column(Text, nullable=True)
    role = Column(
        SQLEnum(ProfileRole, name="profilerole", values_callable=_enum_values),
        nullable=False,
        default=ProfileRole.USER,
    )
    entity_type = Column(
        SQLEnum(EntityType, name="entitytype", values_callable=_enum_values),
        nullable=False,
        default=EntityType.INDIVIDUAL,
    )
    birth_date = Column(String(20), nullable=True)  # individuals
    business_number = Column(String(50), nullable=True)  # corporates
    ceo = Column(String(255), nullable=True)  # corporates
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    memberships = relationship("FundMember", back_populates="profile", cascade="all, delete-orphan")


class FundMember(Base):
    """Membership of a profile in a fund (soft-deletable)."""

    __tablename__ = "fund_members"
    __table_args__ = (UniqueConstraint("fund_id", "profile_id", name="uq_fund_members_fund_profile"),)

    id = Column(Integer, primary_key=True, index=True)
    brand = Column(String(50), nullable=False, default=_current_brand, index=True)
    fund_id = Column(Integer, ForeignKey("funds.id", ondelete="CASCADE"), nullable=False, index=True)
    profile_id = Column(Integer, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    investment_units = Column(Integer, nullable=False, default=0)  # paid-in units, recorded by admins
    total_units = Column(Integer, nullable=False, default=0)  # committed units
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    fund = relationship("Fund", back_populates="members")
    profile = relationship("Profile", back_populates="memberships", lazy="selectin")


class DocumentTemplate(Base):
    """Versioned template content. Only ``is_active`` changes after creation."""

    __tablename__ = "document_templates"

    id = Column(Integer, primary_key=True, index=True)
    brand = Column(String(50), nullable=False, default=_current_brand, index=True)
    document_type = Column(document_type_enum, nullable=False, index=True)
    fund_id = Column(Integer, ForeignKey("funds.id", ondelete="CASCADE"), nullable=True, index=True)  # NULL = global
    version = Column(String(32), nullable=False)
    content = Column(JSON, nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=False)
    created_by = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


# One row per (scope, version); fund_id NULL folded to 0 so global scope is covered
Index(
    "uq_document_templates_scope_version",
    DocumentTemplate.brand,
    DocumentTemplate.document_type,
    func.coalesce(DocumentTemplate.fund_id, 0),
    DocumentTemplate.version,
    unique=True,
)

# At most one active template per scope
Index(
    "uq_document_templates_active_scope",
    DocumentTemplate.brand,
    DocumentTemplate.document_type,
    func.coalesce(DocumentTemplate.fund_id, 0),
    unique=True,
    postgresql_where=DocumentTemplate.is_active.is_(True),
    sqlite_where=DocumentTemplate.is_active.is_(True),
)


class GeneratedDocument(Base):
    """Immutable rendered document version with its PDF artifact."""

    __tablename__ = "generated_documents"
    __table_args__ = (
        UniqueConstraint(
            "fund_id", "document_type", "version_number",
            name="uq_generated_documents_version",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    brand = Column(String(50), nullable=False, default=_current_brand, index=True)
    fund_id = Column(Integer, ForeignKey("funds.id", ondelete="CASCADE"), nullable=False, index=True)
    document_type = Column(document_type_enum, nullable=False, index=True)
    version_number = Column(Integer, nullable=False)
    template_id = Column(Integer, ForeignKey("document_templates.id", ondelete="SET NULL"), nullable=True)
    template_version = Column(String(32), nullable=False)
    generation_context = Column(JSON, nullable=False)  # snapshot of the inputs
    processed_content = Column(JSON, nullable=False)  # rendered field values
    pdf_storage_path = Column(String(512), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)  # False = soft-deleted
    generated_by = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    # Relationships
    fund = relationship("Fund", back_populates="documents")
