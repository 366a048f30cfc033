from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.scholartrack.models import Base


class RequirementsTemplate(Base):
    __tablename__ = "requirements_templates"
    __table_args__ = (
        Index("idx_templates_category", "category"),
        Index("idx_templates_active_usage", "is_active", "usage_count"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str] = mapped_column(String(32), nullable=False)  # graduate, undergraduate, scholarship, custom
    tags: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)

    usage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_system_template: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    requirements: Mapped[list["TemplateRequirement"]] = relationship(
        "TemplateRequirement",
        back_populates="template",
        cascade="all, delete-orphan",
        order_by="TemplateRequirement.order",
        lazy="selectin",
    )


class TemplateRequirement(Base):
    """One requirement definition inside a template."""

    __tablename__ = "template_requirements"
    __table_args__ = (
        UniqueConstraint("template_id", "key", name="uq_template_requirement_key"),
        Index("idx_template_requirements_template", "template_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    template_id: Mapped[int] = mapped_column(ForeignKey("requirements_templates.id", ondelete="CASCADE"), nullable=False)
    key: Mapped[str] = mapped_column(String(128), nullable=False)  # slug of name

    requirement_type: Mapped[str] = mapped_column(String(32), nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_optional: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    document_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    max_file_size: Mapped[float | None] = mapped_column(Float, nullable=True)
    allowed_file_types: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    word_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)
    character_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)

    test_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    min_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    max_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    score_format: Mapped[str | None] = mapped_column(String(255), nullable=True)

    application_fee_amount: Mapped[float | None] = mapped_column(Float, nullable=True)
    application_fee_currency: Mapped[str | None] = mapped_column(String(8), nullable=True)
    application_fee_description: Mapped[str | None] = mapped_column(String(512), nullable=True)

    interview_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    interview_duration: Mapped[int | None] = mapped_column(Integer, nullable=True)
    interview_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    template: Mapped["RequirementsTemplate"] = relationship("RequirementsTemplate", back_populates="requirements")
