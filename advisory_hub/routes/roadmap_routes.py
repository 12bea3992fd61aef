from datetime import datetime
from typing import Iterable

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from advisory_hub.auth.dependencies import get_confirmed_user, require_capability
from advisory_hub.auth.permissions import Capability, has_capability
from advisory_hub.core.timestamps import to_local_naive
from advisory_hub.database import DATABASE_UNAVAILABLE_DETAIL, get_db
from advisory_hub.models.enrollment import Enrollment
from advisory_hub.models.enums import TaskStatus, UserRole
from advisory_hub.models.roadmap import Milestone, Roadmap, Task
from advisory_hub.models.user import User

router = APIRouter(tags=['roadmaps'])


def _required_title(value: str) -> str:
    normalized = value.strip()
    if not normalized:
        raise ValueError('Title is required.')
    return normalized


class TaskRequest(BaseModel):
    title: str
    description: str | None = None

    @field_validator('title')
    @classmethod
    def validate_title(cls, value: str) -> str:
        return _required_title(value)


class MilestoneRequest(BaseModel):
    title: str
    description: str | None = None
    due_date: datetime | None = None
    tasks: list[TaskRequest] = []

    @field_validator('title')
    @classmethod
    def validate_title(cls, value: str) -> str:
        return _required_title(value)

    @field_validator('due_date')
    @classmethod
    def normalize_due_date(cls, value: datetime | None) -> datetime | None:
        return to_local_naive(value)


class CreateRoadmapRequest(BaseModel):
    enrollment_id: int
    title: str
    description: str | None = None
    milestones: list[MilestoneRequest] = []

    @field_validator('title')
    @classmethod
    def validate_title(cls, value: str) -> str:
        return _required_title(value)


class TaskStatusRequest(BaseModel):
    status: TaskStatus


class TaskResponse(BaseModel):
    id: int
    title: str
    description: str | None = None
    order: int
    status: TaskStatus

    class Config:
        from_attributes = True


class MilestoneResponse(BaseModel):
    id: int
    title: str
    description: str | None = None
    order: int
    status: TaskStatus
    due_date: datetime | None = None
    tasks: list[TaskResponse]

    class Config:
        from_attributes = True


class RoadmapResponse(BaseModel):
    id: int
    enrollment_id: int
    title: str
    description: str | None = None
    created_at: datetime | None = None
    milestones: list[MilestoneResponse]

    class Config:
        from_attributes = True


def derive_milestone_status(task_statuses: Iterable[TaskStatus]) -> TaskStatus:
    statuses = list(task_statuses)
    if statuses and all(task_status == TaskStatus.COMPLETED for task_status in statuses):
        return TaskStatus.COMPLETED
    if any(task_status in (TaskStatus.COMPLETED, TaskStatus.IN_PROGRESS) for task_status in statuses):
        return TaskStatus.IN_PROGRESS
    return TaskStatus.NOT_STARTED


def roadmap_query(db: Session):
    return db.query(Roadmap).options(
        selectinload(Roadmap.milestones).selectinload(Milestone.tasks),
    )


@router.get('', response_model=list[RoadmapResponse])
def list_roadmaps(
    user_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_confirmed_user),
):
    try:
        query = roadmap_query(db).join(Enrollment, Roadmap.enrollment_id == Enrollment.id)
        if has_capability(current_user.role, Capability.MANAGE_ROADMAPS):
            if user_id is not None:
                query = query.filter(Enrollment.user_id == user_id)
        else:
            query = query.filter(Enrollment.user_id == current_user.id)

        return query.order_by(Roadmap.created_at.desc(), Roadmap.id.desc()).all()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@router.get('/{roadmap_id}', response_model=RoadmapResponse)
def get_roadmap(
    roadmap_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_confirmed_user),
):
    try:
        roadmap = roadmap_query(db).filter(Roadmap.id == roadmap_id).first()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc

    if roadmap is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Roadmap not found.')
    if current_user.role != UserRole.ADMIN and roadmap.enrollment.user_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail='Access denied.')
    return roadmap


@router.post('', response_model=RoadmapResponse, status_code=status.HTTP_201_CREATED)
def create_roadmap(
    data: CreateRoadmapRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_capability(Capability.MANAGE_ROADMAPS)),
):
    del admin
    try:
        enrollment = db.query(Enrollment).filter(Enrollment.id == data.enrollment_id).first()
        if enrollment is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Enrollment not found.')

        roadmap = Roadmap(
            enrollment_id=enrollment.id,
            title=data.title,
            description=data.description,
            milestones=[
                Milestone(
                    title=milestone.title,
                    description=milestone.description,
                    due_date=milestone.due_date,
                    order=milestone_index,
                    status=TaskStatus.NOT_STARTED,
                    tasks=[
                        Task(
                            title=task.title,
                            description=task.description,
                            order=task_index,
                            status=TaskStatus.NOT_STARTED,
                        )
                        for task_index, task in enumerate(milestone.tasks)
                    ],
                )
                for milestone_index, milestone in enumerate(data.milestones)
            ],
        )
        db.add(roadmap)
        db.commit()
        db.refresh(roadmap)
        return roadmap
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@router.delete('/{roadmap_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_roadmap(
    roadmap_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_capability(Capability.MANAGE_ROADMAPS)),
):
    del admin
    try:
        roadmap = db.query(Roadmap).filter(Roadmap.id == roadmap_id).first()
        if roadmap is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Roadmap not found.')
        db.delete(roadmap)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@router.put('/tasks/{task_id}/status', response_model=MilestoneResponse)
def update_task_status(
    task_id: int,
    data: TaskStatusRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_capability(Capability.UPDATE_OWN_TASKS)),
):
    """Set a task's status and return its milestone with the recomputed status."""
    try:
        task = db.query(Task).filter(Task.id == task_id).first()
        if task is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Task not found.')

        milestone = task.milestone
        owner_id = milestone.roadmap.enrollment.user_id
        if current_user.role != UserRole.ADMIN and owner_id != current_user.id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail='Access denied.')

        task.status = data.status
        db.flush()
        milestone.status = derive_milestone_status(sibling.status for sibling in milestone.tasks)

        db.commit()
        db.refresh(milestone)
        return milestone
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc
