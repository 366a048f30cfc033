from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.scholartrack.models import Base

if TYPE_CHECKING:
    from app.scholartrack.modules.requirements.models import ApplicationRequirement


class Application(Base):
    __tablename__ = "applications"
    __table_args__ = (
        Index("idx_applications_user", "user_id"),
        Index("idx_applications_status", "status"),
        Index("idx_applications_user_offer", "user_id", "offer_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    offer_id: Mapped[str] = mapped_column(String(128), nullable=False)  # scholarship/program/school reference
    offer_type: Mapped[str] = mapped_column(String(32), nullable=False, default="scholarship")
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    status: Mapped[str] = mapped_column(String(32), nullable=False, default="draft")  # draft, in_progress, submitted
    current_section_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    last_activity_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    sections: Mapped[list["ApplicationSection"]] = relationship(
        "ApplicationSection",
        back_populates="application",
        cascade="all, delete-orphan",
        order_by="ApplicationSection.position",
        lazy="selectin",
    )
    requirements: Mapped[list["ApplicationRequirement"]] = relationship(
        "ApplicationRequirement",
        back_populates="application",
        cascade="all, delete-orphan",
        lazy="select",
    )


class ApplicationSection(Base):
    __tablename__ = "application_sections"
    __table_args__ = (
        UniqueConstraint("application_id", "section_id", name="uq_application_section"),
        Index("idx_application_sections_app", "application_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    application_id: Mapped[int] = mapped_column(ForeignKey("applications.id", ondelete="CASCADE"), nullable=False)
    section_id: Mapped[str] = mapped_column(String(128), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    is_complete: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    application: Mapped["Application"] = relationship("Application", back_populates="sections")
