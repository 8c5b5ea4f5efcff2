"""SQLAlchemy 2.x models (async-compatible) for FastAPI.

Child rows are removed by ON DELETE CASCADE in the database; relationships
use passive_deletes so the ORM never lazy-loads children just to delete them.
"""

import json
import uuid
from datetime import datetime
from typing import Optional, List

from sqlalchemy import (
    Boolean, Integer, String, Text, Float, DateTime,
    ForeignKey, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base

# data_sources.status
STATUS_PENDING = "pending"
STATUS_PROCESSING = "processing"
STATUS_PROCESSED = "processed"
STATUS_FAILED = "failed"
SOURCE_STATUSES = (STATUS_PENDING, STATUS_PROCESSING, STATUS_PROCESSED, STATUS_FAILED)

# summaries.level, most detailed first
LEVEL_SENTENCE = "sentence"
LEVEL_PARAGRAPH = "paragraph"
LEVEL_FULL = "full"
SUMMARY_LEVELS = (LEVEL_SENTENCE, LEVEL_PARAGRAPH, LEVEL_FULL)

PARAMETER_TYPES = ("text", "number", "date", "category")


def _uuid() -> str:
    return str(uuid.uuid4())


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    projects: Mapped[List["Project"]] = relationship(
        "Project", back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )


class Project(Base):
    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    user: Mapped["User"] = relationship("User", back_populates="projects")
    data_sources: Mapped[List["DataSource"]] = relationship(
        "DataSource", back_populates="project", cascade="all, delete-orphan", passive_deletes=True
    )
    synthesis_parameters: Mapped[List["SynthesisParameter"]] = relationship(
        "SynthesisParameter", back_populates="project",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "description": self.description,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class DataSource(Base):
    __tablename__ = "data_sources"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    project_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(String(20), nullable=False)  # pdf | docx | pptx | txt | audio | document | url
    name: Mapped[str] = mapped_column(Text, nullable=False)
    content_url: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=STATUS_PENDING, server_default=STATUS_PENDING, nullable=False
    )
    metadata_json: Mapped[str] = mapped_column("metadata", Text, default="{}")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    project: Mapped["Project"] = relationship("Project", back_populates="data_sources")
    summaries: Mapped[List["Summary"]] = relationship(
        "Summary", back_populates="data_source", cascade="all, delete-orphan", passive_deletes=True
    )

    @property
    def source_metadata(self) -> dict:
        return json.loads(self.metadata_json or "{}")

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "type": self.type,
            "name": self.name,
            "content_url": self.content_url,
            "status": self.status,
            "metadata": self.source_metadata,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class Summary(Base):
    __tablename__ = "summaries"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    data_source_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("data_sources.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # The paragraph summary points at the sentence summary, the full summary at the paragraph one
    parent_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("summaries.id", ondelete="CASCADE"), nullable=True
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    level: Mapped[str] = mapped_column(String(20), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    data_source: Mapped["DataSource"] = relationship("DataSource", back_populates="summaries")

    def to_dict(self):
        return {
            "id": self.id,
            "data_source_id": self.data_source_id,
            "parent_id": self.parent_id,
            "content": self.content,
            "level": self.level,
            "created_at": _iso(self.created_at),
        }


class SynthesisParameter(Base):
    """One column of a project's synthesis matrix."""
    __tablename__ = "synthesis_parameters"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    project_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)  # text | number | date | category
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_system: Mapped[bool] = mapped_column(Boolean, default=False)  # AI-discovered vs user-defined
    display_order: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    project: Mapped["Project"] = relationship("Project", back_populates="synthesis_parameters")
    values: Mapped[List["SynthesisValue"]] = relationship(
        "SynthesisValue", back_populates="parameter", cascade="all, delete-orphan", passive_deletes=True
    )

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "type": self.type,
            "description": self.description,
            "is_system": bool(self.is_system),
            "display_order": self.display_order,
            "created_at": _iso(self.created_at),
        }


class SynthesisValue(Base):
    """One cell of the synthesis matrix: a parameter's value for one data source."""
    __tablename__ = "synthesis_values"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    parameter_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("synthesis_parameters.id", ondelete="CASCADE"), nullable=False, index=True
    )
    data_source_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("data_sources.id", ondelete="CASCADE"), nullable=False, index=True
    )
    value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # human-entered
    extracted_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # AI-extracted
    confidence: Mapped[Optional[float]] = mapped_column(Float, nullable=True)  # 0.0 - 1.0
    context: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    parameter: Mapped["SynthesisParameter"] = relationship("SynthesisParameter", back_populates="values")

    __table_args__ = (
        UniqueConstraint("parameter_id", "data_source_id", name="_parameter_source_uc"),
    )

    @property
    def display_value(self) -> str:
        return self.value or self.extracted_value or ""

    def to_dict(self):
        return {
            "id": self.id,
            "parameter_id": self.parameter_id,
            "data_source_id": self.data_source_id,
            "value": self.value,
            "extracted_value": self.extracted_value,
            "confidence": self.confidence,
            "context": self.context,
            "is_verified": bool(self.is_verified),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
