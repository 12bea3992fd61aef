"""Roadmap, milestone and task model definitions."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from advisory_hub.database import Base
from advisory_hub.models.enums import TaskStatus


class Roadmap(Base):
    """A milestone plan attached to an enrollment."""
    __tablename__ = "roadmaps"

    id = Column(Integer, primary_key=True)
    enrollment_id = Column(Integer, ForeignKey("enrollments.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text)
    created_at = Column(DateTime, default=datetime.now)

    enrollment = relationship("Enrollment")
    milestones = relationship(
        "Milestone",
        back_populates="roadmap",
        cascade="all, delete-orphan",
        order_by="Milestone.order",
    )


class Milestone(Base):
    __tablename__ = "milestones"

    id = Column(Integer, primary_key=True)
    roadmap_id = Column(Integer, ForeignKey("roadmaps.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text)
    order = Column(Integer, nullable=False, default=0)
    status = Column(Enum(TaskStatus, native_enum=False, length=16), nullable=False, default=TaskStatus.NOT_STARTED)
    due_date = Column(DateTime, nullable=True)

    roadmap = relationship("Roadmap", back_populates="milestones")
    tasks = relationship(
        "Task",
        back_populates="milestone",
        cascade="all, delete-orphan",
        order_by="Task.order",
    )


class Task(Base):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True)
    milestone_id = Column(Integer, ForeignKey("milestones.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text)
    order = Column(Integer, nullable=False, default=0)
    status = Column(Enum(TaskStatus, native_enum=False, length=16), nullable=False, default=TaskStatus.NOT_STARTED)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    milestone = relationship("Milestone", back_populates="tasks")
