from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.scholartrack.models import Base

if TYPE_CHECKING:
    from app.scholartrack.modules.applications.models import Application
    from app.scholartrack.modules.documents.models import Document


class ApplicationRequirement(Base):
    __tablename__ = "application_requirements"
    __table_args__ = (
        # One copy per template definition per application
        UniqueConstraint("application_id", "source_key", name="uq_requirement_source"),
        Index("idx_requirements_application", "application_id"),
        Index("idx_requirements_app_status", "application_id", "status"),
        Index("idx_requirements_app_order", "application_id", "order"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    application_id: Mapped[int] = mapped_column(ForeignKey("applications.id", ondelete="CASCADE"), nullable=False)

    requirement_type: Mapped[str] = mapped_column(String(32), nullable=False)  # document, test_score, fee, interview, other
    category: Mapped[str] = mapped_column(String(32), nullable=False)  # academic, financial, personal, professional, administrative
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_optional: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Document requirements
    document_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    max_file_size: Mapped[float | None] = mapped_column(Float, nullable=True)  # MB
    allowed_file_types: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    word_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)
    character_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Test score requirements
    test_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    min_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    max_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    score_format: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Fee requirements
    application_fee_amount: Mapped[float | None] = mapped_column(Float, nullable=True)
    application_fee_currency: Mapped[str | None] = mapped_column(String(8), nullable=True)
    application_fee_description: Mapped[str | None] = mapped_column(String(512), nullable=True)
    application_fee_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    application_fee_paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    # Interview requirements
    interview_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    interview_duration: Mapped[int | None] = mapped_column(Integer, nullable=True)  # minutes
    interview_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Status tracking
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending")
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    linked_document_id: Mapped[int | None] = mapped_column(ForeignKey("documents.id", ondelete="SET NULL"), nullable=True)
    external_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    # "<template_id>:<definition key>" when copied from a template, else NULL
    source_key: Mapped[str | None] = mapped_column(String(255), nullable=True)

    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    application: Mapped["Application"] = relationship("Application", back_populates="requirements")
    linked_document: Mapped["Document | None"] = relationship("Document", lazy="selectin")
