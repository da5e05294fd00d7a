from __future__ import annotations

from datetime import date, datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _new_id() -> str:
    return str(uuid4())


class Base(DeclarativeBase):
    pass


# Role and status vocabularies mirror the CHECK constraints of the external schema.
ROLE_SUPER_ADMIN = "super_admin"
ROLE_PRIMARY_ADMIN = "primary_admin"
ROLE_SECONDARY_ADMIN = "secondary_admin"
ROLE_USER = "user"
ROLE_REGULATOR = "regulator"
USER_ROLES = (ROLE_SUPER_ADMIN, ROLE_PRIMARY_ADMIN, ROLE_SECONDARY_ADMIN, ROLE_USER, ROLE_REGULATOR)

STATUS_PENDING = "pending"
STATUS_PENDING_INVITE = "pending_invite"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"
STATUS_SUSPENDED = "suspended"
USER_STATUSES = (
    STATUS_PENDING,
    STATUS_PENDING_INVITE,
    STATUS_APPROVED,
    STATUS_REJECTED,
    STATUS_SUSPENDED,
)

INVITATION_PENDING = "pending"
INVITATION_ACCEPTED = "accepted"
INVITATION_EXPIRED = "expired"

SUGGESTION_PENDING = "pending"
SUGGESTION_ACCEPTED = "accepted"
SUGGESTION_REJECTED = "rejected"


class Organization(Base):
    __tablename__ = "organizations"

    id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String)
    logo_url: Mapped[str | None] = mapped_column(String, nullable=True)
    # Organization id at the hosted sign-up provider, used by membership webhooks.
    clerk_org_id: Mapped[str | None] = mapped_column(String, nullable=True, unique=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class UserProfile(Base):
    __tablename__ = "user_profiles"
    __table_args__ = (
        Index("ix_user_profiles_org_status", "organization_id", "status"),
    )

    # Shares its id with the identity provider account.
    id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True)
    # Regulators are not members of any organization.
    organization_id: Mapped[str | None] = mapped_column(
        Uuid(as_uuid=False), ForeignKey("organizations.id"), nullable=True, index=True
    )
    # Account id at the hosted sign-up provider; set when its webhook links the profile.
    clerk_id: Mapped[str | None] = mapped_column(String, nullable=True, unique=True, index=True)
    email: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    full_name: Mapped[str | None] = mapped_column(String, nullable=True)
    role: Mapped[str] = mapped_column(String, default=ROLE_USER)
    status: Mapped[str] = mapped_column(String, default=STATUS_PENDING)
    approved_by: Mapped[str | None] = mapped_column(Uuid(as_uuid=False), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class UserInvitation(Base):
    __tablename__ = "user_invitations"
    __table_args__ = (
        Index("ix_user_invitations_email_org", "email", "organization_id"),
    )

    id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_new_id)
    invite_code: Mapped[str] = mapped_column(String(8), unique=True)
    email: Mapped[str] = mapped_column(String(255))
    organization_id: Mapped[str | None] = mapped_column(
        Uuid(as_uuid=False), ForeignKey("organizations.id"), nullable=True
    )
    role: Mapped[str] = mapped_column(String(50))
    status: Mapped[str] = mapped_column(String(20), default=INVITATION_PENDING)
    created_by: Mapped[str] = mapped_column(Uuid(as_uuid=False))
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    used_by: Mapped[str | None] = mapped_column(Uuid(as_uuid=False), nullable=True)
    used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Regulator(Base):
    __tablename__ = "regulators"

    id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_new_id)
    code: Mapped[str | None] = mapped_column(String, nullable=True)
    name: Mapped[str] = mapped_column(String)


class RegulatorAccess(Base):
    __tablename__ = "regulator_access"

    id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), index=True)
    regulator_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), ForeignKey("regulators.id"))
    granted_by: Mapped[str] = mapped_column(Uuid(as_uuid=False))
    granted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Risk(Base):
    __tablename__ = "risks"

    id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_new_id)
    organization_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), index=True)
    risk_code: Mapped[str] = mapped_column(String)
    risk_title: Mapped[str] = mapped_column(String)
    risk_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str | None] = mapped_column(String, nullable=True)
    division: Mapped[str | None] = mapped_column(String, nullable=True)
    department: Mapped[str | None] = mapped_column(String, nullable=True)
    # Upper-case register statuses: OPEN, MONITORING, CLOSED, ARCHIVED.
    status: Mapped[str] = mapped_column(String, default="OPEN")
    owner_id: Mapped[str | None] = mapped_column(Uuid(as_uuid=False), nullable=True)
    likelihood_inherent: Mapped[int | None] = mapped_column(Integer, nullable=True)
    impact_inherent: Mapped[int | None] = mapped_column(Integer, nullable=True)


class Incident(Base):
    __tablename__ = "incidents"

    id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_new_id)
    organization_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), index=True)
    incident_code: Mapped[str | None] = mapped_column(String, nullable=True)
    title: Mapped[str] = mapped_column(String)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    incident_type: Mapped[str | None] = mapped_column(String, nullable=True)
    # 1=LOW, 2=MEDIUM, 3=HIGH, 4=CRITICAL
    severity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    incident_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    division: Mapped[str | None] = mapped_column(String, nullable=True)
    department: Mapped[str | None] = mapped_column(String, nullable=True)
    financial_impact: Mapped[float | None] = mapped_column(Float, nullable=True)
    root_cause: Mapped[str | None] = mapped_column(Text, nullable=True)
    impact_description: Mapped[str | None] = mapped_column(Text, nullable=True)


class IncidentPatternAnalysis(Base):
    __tablename__ = "incident_pattern_analysis"

    incident_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True)
    similar_mapped_count: Mapped[int] = mapped_column(Integer, default=0)
    most_common_risk_code: Mapped[str | None] = mapped_column(String, nullable=True)
    historical_confidence_pct: Mapped[float | None] = mapped_column(Float, nullable=True)


class IncidentRiskAiSuggestion(Base):
    __tablename__ = "incident_risk_ai_suggestions"
    __table_args__ = (
        Index("ix_incident_risk_ai_suggestions_incident_status", "incident_id", "status"),
    )

    id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_new_id)
    organization_id: Mapped[str] = mapped_column(Uuid(as_uuid=False))
    incident_id: Mapped[str] = mapped_column(Uuid(as_uuid=False))
    risk_id: Mapped[str] = mapped_column(Uuid(as_uuid=False))
    confidence_score: Mapped[int] = mapped_column(Integer)
    reasoning: Mapped[str | None] = mapped_column(Text, nullable=True)
    keywords_matched: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    similar_incident_count: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String, default=SUGGESTION_PENDING)
    ai_model_version: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class UserStatusTransition(Base):
    __tablename__ = "user_status_transitions"

    # Immutable log of profile status changes applied outside the stored procedure.
    id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_new_id)
    organization_id: Mapped[str | None] = mapped_column(Uuid(as_uuid=False), nullable=True)
    user_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), index=True)
    from_status: Mapped[str | None] = mapped_column(String, nullable=True)
    to_status: Mapped[str] = mapped_column(String)
    transition_type: Mapped[str] = mapped_column(String)
    actor_user_id: Mapped[str | None] = mapped_column(Uuid(as_uuid=False), nullable=True)
    actor_role: Mapped[str | None] = mapped_column(String, nullable=True)
    actor_email: Mapped[str | None] = mapped_column(String, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    request_id: Mapped[str | None] = mapped_column(String, nullable=True)
    changed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class AuditTrail(Base):
    __tablename__ = "audit_trail"

    id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_new_id)
    organization_id: Mapped[str | None] = mapped_column(Uuid(as_uuid=False), nullable=True)
    user_id: Mapped[str | None] = mapped_column(Uuid(as_uuid=False), nullable=True)
    user_email: Mapped[str | None] = mapped_column(String, nullable=True)
    # create, update, approve, reject, role_change, ...
    action: Mapped[str] = mapped_column(String)
    entity_type: Mapped[str] = mapped_column(String)
    entity_id: Mapped[str | None] = mapped_column(Uuid(as_uuid=False), nullable=True)
    entity_code: Mapped[str | None] = mapped_column(String, nullable=True)
    old_values: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    new_values: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    # "metadata" is reserved on declarative classes.
    metadata_json: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSON, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
