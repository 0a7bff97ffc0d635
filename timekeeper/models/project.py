"""
Project & membership models: owned by the project directory.
"""

from __future__ import annotations

from datetime import date

from sqlalchemy import (Boolean, Column, Date, Float, ForeignKey, Integer,
                        String, UniqueConstraint)
from sqlalchemy.orm import relationship

from timekeeper.db.base import Base


class Project(Base):
    __tablename__ = "projects"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    company_id: int = Column(Integer, nullable=False, index=True)  # type: ignore[assignment]
    name: str = Column(String(200), nullable=False)  # type: ignore[assignment]
    description: str | None = Column(String(1000), nullable=True)  # type: ignore[assignment]
    status: str | None = Column(String(30), nullable=True)  # type: ignore[assignment]
    start_date: date | None = Column(Date, nullable=True)  # type: ignore[assignment]
    end_date: date | None = Column(Date, nullable=True)  # type: ignore[assignment]

    members = relationship(
        "ProjectMembership",
        back_populates="project",
        cascade="all, delete-orphan",
    )


class ProjectMembership(Base):
    __tablename__ = "project_memberships"
    __table_args__ = (UniqueConstraint("project_id", "user_id", name="uq_membership_project_user"),)

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    project_id: int = Column(Integer, ForeignKey("projects.id"), nullable=False)  # type: ignore[assignment]
    user_id: int = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)  # type: ignore[assignment]
    is_manager: bool = Column(Boolean, default=False, server_default="false")  # type: ignore[assignment]
    allocation: float = Column(Float, default=0.0)  # type: ignore[assignment]

    project = relationship("Project", back_populates="members")
