import os
import uuid
import sqlalchemy as sa
from sqlalchemy import (
    Column,
    String,
    Boolean,
    DateTime,
    ForeignKey,
    JSON,
    Integer,
    Text,
    Float,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from datetime import datetime, timezone

from .database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _default_frequency() -> int:
    return int(os.getenv("DEFAULT_CHECK_IN_FREQUENCY_DAYS", "30"))


class Owner(Base):
    __tablename__ = "owners"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String, unique=True, nullable=False)
    full_name = Column(String)
    phone_number = Column(String)
    last_check_in = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    check_in_frequency_days = Column(Integer, default=_default_frequency, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    trustees = relationship(
        "Trustee",
        back_populates="owner",
        cascade="all, delete-orphan",
        order_by="Trustee.created_at.desc()",
    )
    items = relationship(
        "ProtectedItem", back_populates="owner", cascade="all, delete-orphan"
    )
    assets = relationship("Asset", back_populates="owner", cascade="all, delete-orphan")
    conflicts = relationship(
        "ConflictRecord", back_populates="owner", cascade="all, delete-orphan"
    )

    __table_args__ = (
        sa.CheckConstraint("check_in_frequency_days > 0", name="ck_owner_frequency_positive"),
    )


class Trustee(Base):
    __tablename__ = "trustees"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_id = Column(
        UUID(as_uuid=True), ForeignKey("owners.id", ondelete="CASCADE"), nullable=False
    )
    name = Column(String, nullable=False)
    email = Column(String, nullable=False)
    relationship_label = Column("relationship", String)
    phone_number = Column(String)
    access_level = Column(String, default="all", nullable=False)
    custom_access = Column(JSON, default=list)
    notification_trigger = Column(String, default="inactivity", nullable=False)
    trigger_date = Column(DateTime(timezone=True), nullable=True)
    verification_status = Column(String, default="pending", nullable=False)
    verification_code = Column(String, nullable=True)
    verified_at = Column(DateTime(timezone=True), nullable=True)
    notified = Column(Boolean, default=False, nullable=False)
    notified_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    owner = relationship("Owner", back_populates="trustees")
    grants = relationship(
        "AccessGrant", back_populates="trustee", cascade="all, delete-orphan"
    )


class ProtectedItem(Base):
    __tablename__ = "protected_items"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_id = Column(
        UUID(as_uuid=True), ForeignKey("owners.id", ondelete="CASCADE"), nullable=False
    )
    title = Column(String, nullable=False)
    item_type = Column(String, nullable=False)
    category = Column(String, nullable=True)
    tags = Column(JSON, default=list)
    description = Column(Text)
    content = Column(Text)
    is_public = Column(Boolean, default=False, nullable=False)
    importance = Column(String, default="medium", nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    owner = relationship("Owner", back_populates="items")
    grants = relationship(
        "AccessGrant", back_populates="item", cascade="all, delete-orphan"
    )


class AccessGrant(Base):
    __tablename__ = "access_grants"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    item_id = Column(
        UUID(as_uuid=True),
        ForeignKey("protected_items.id", ondelete="CASCADE"),
        nullable=False,
    )
    trustee_id = Column(
        UUID(as_uuid=True), ForeignKey("trustees.id", ondelete="CASCADE"), nullable=False
    )
    access_trigger = Column(String, default="inactivity", nullable=False)
    trigger_date = Column(DateTime(timezone=True), nullable=True)
    access_granted = Column(Boolean, default=False, nullable=False)
    access_granted_date = Column(DateTime(timezone=True), nullable=True)
    revoked_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    item = relationship("ProtectedItem", back_populates="grants")
    trustee = relationship("Trustee", back_populates="grants")

    __table_args__ = (
        sa.UniqueConstraint("item_id", "trustee_id", name="uq_access_grant_item_trustee"),
    )


class Asset(Base):
    __tablename__ = "assets"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_id = Column(
        UUID(as_uuid=True), ForeignKey("owners.id", ondelete="CASCADE"), nullable=False
    )
    asset_type = Column(String, nullable=False)
    asset_category = Column(String, nullable=True)
    institution_name = Column(String)
    asset_title = Column(String, nullable=False)
    description = Column(Text)
    estimated_value = Column(Float)
    beneficiary_designation = Column(JSON, default=dict)
    conflict_status = Column(String, default="unchecked", nullable=False)
    last_reviewed_date = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    owner = relationship("Owner", back_populates="assets")
    conflicts = relationship("ConflictRecord", back_populates="asset")


class ConflictRecord(Base):
    __tablename__ = "conflict_records"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_id = Column(
        UUID(as_uuid=True), ForeignKey("owners.id", ondelete="CASCADE"), nullable=False
    )
    asset_id = Column(
        UUID(as_uuid=True), ForeignKey("assets.id", ondelete="SET NULL"), nullable=True
    )
    conflict_type = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    severity = Column(String, default="medium", nullable=False)
    status = Column(String, default="unresolved", nullable=False)
    recommendations = Column(JSON, default=list)
    details = Column(JSON, default=dict)
    detected_at = Column(DateTime(timezone=True), default=_utcnow)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    resolution_notes = Column(Text)

    owner = relationship("Owner", back_populates="conflicts")
    asset = relationship("Asset", back_populates="conflicts")


class AuditLog(Base):
    __tablename__ = "audit_logs"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_id = Column(UUID(as_uuid=True), ForeignKey("owners.id", ondelete="CASCADE"))
    action = Column(String, nullable=False)
    target_type = Column(String)
    target_id = Column(UUID(as_uuid=True))
    details = Column(JSON, default=dict)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
