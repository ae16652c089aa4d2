# metavault/db/models.py
"""
SQLAlchemy models for the Metavault backend.
"""
from sqlalchemy import Column, String, DateTime, JSON, ForeignKey, Text, Integer, BigInteger, UniqueConstraint, Index
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from datetime import datetime, timezone
from metavault.db.session import Base


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column in this schema stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(Base):
    __tablename__ = "users"
    user_id = Column(String(64), primary_key=True)
    email = Column(String, nullable=True, unique=True)
    # Non-null iff exactly one open metafile_locks row exists for this user
    current_lock_token = Column(String(64), nullable=True)
    password_hash = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class MetafileLock(Base):
    __tablename__ = "metafile_locks"
    id = Column(Integer, primary_key=True, autoincrement=True)
    lock_id = Column(String(64), nullable=False, unique=True)
    user_id = Column(String(64), ForeignKey("users.user_id"), nullable=False, index=True)
    ip_address = Column(String(45), nullable=True)
    start_time = Column(DateTime, nullable=False, default=utcnow)
    end_time = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_metafile_locks_user_start", "user_id", "start_time"),
    )


class MetafileVersion(Base):
    __tablename__ = "metafile_versions"
    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), ForeignKey("users.user_id"), nullable=False, index=True)
    version = Column(Integer, nullable=False)
    lock_id = Column(String(64), nullable=True)
    size = Column(BigInteger, nullable=False, default=0)
    checksum = Column(String(128), nullable=True)
    created_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "version", name="uq_metafile_versions_user_version"),
    )


class CloudBinding(Base):
    __tablename__ = "cloud_bindings"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(String(64), ForeignKey("users.user_id"), nullable=False, index=True)
    vault_id = Column(String(128), nullable=False)
    backend_type = Column(String(32), nullable=True)
    # Opaque provider credential blob (JSON text)
    token = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "vault_id", name="uq_cloud_bindings_user_vault"),
    )


class OAuthState(Base):
    __tablename__ = "oauth_states"
    nonce = Column(String(128), primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    vault_id = Column(String(128), nullable=False)
    backend_type = Column(String(32), nullable=False)
    created_at = Column(DateTime, default=utcnow)
    expires_at = Column(DateTime, nullable=False)


class AuditLog(Base):
    __tablename__ = "audit_logs"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(String(64), nullable=True, index=True)
    action = Column(String, nullable=False)
    actor = Column(String, nullable=True)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow)


class ErrorLog(Base):
    __tablename__ = "error_logs"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    request_id = Column(String, nullable=True)
    user_id = Column(String(64), nullable=True, index=True)
    component = Column(String, nullable=True)
    function = Column(String, nullable=True)
    severity = Column(String, nullable=False, default="ERROR")
    message = Column(Text, nullable=False)
    details = Column(JSON, nullable=True)
    stacktrace = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)
