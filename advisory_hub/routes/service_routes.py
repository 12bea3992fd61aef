from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from advisory_hub.auth.dependencies import require_capability
from advisory_hub.auth.permissions import Capability
from advisory_hub.database import DATABASE_UNAVAILABLE_DETAIL, get_db
from advisory_hub.models.enrollment import Enrollment
from advisory_hub.models.enums import ServiceStatus, ServiceType
from advisory_hub.models.service import Service
from advisory_hub.models.user import User

router = APIRouter(tags=['services'])
admin_router = APIRouter(tags=['admin-services'])


def to_cents(amount: float | None) -> int | None:
    if amount is None:
        return None
    return round(amount * 100)


class ServiceRequest(BaseModel):
    name: str
    description: str
    type: ServiceType
    status: ServiceStatus = ServiceStatus.DRAFT
    single_session_price: float | None = None
    monthly_plan_price: float | None = None
    hourly_rate: float | None = None

    @field_validator('name', 'description')
    @classmethod
    def validate_required_text(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Name and description are required.')
        return normalized

    @field_validator('single_session_price', 'monthly_plan_price', 'hourly_rate')
    @classmethod
    def validate_price(cls, value: float | None) -> float | None:
        if value is not None and value < 0:
            raise ValueError('Prices cannot be negative.')
        return value


class ServiceResponse(BaseModel):
    id: int
    name: str
    description: str
    type: ServiceType
    status: ServiceStatus
    single_session_price: int | None = None
    monthly_plan_price: int | None = None
    hourly_rate: int | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True


def apply_service_fields(service: Service, data: ServiceRequest) -> None:
    service.name = data.name
    service.description = data.description
    service.type = data.type
    service.status = data.status
    service.single_session_price = to_cents(data.single_session_price)
    service.monthly_plan_price = to_cents(data.monthly_plan_price)
    service.hourly_rate = to_cents(data.hourly_rate)


@router.get('', response_model=list[ServiceResponse])
def list_published_services(
    service_type: ServiceType | None = Query(default=None, alias='type'),
    db: Session = Depends(get_db),
):
    try:
        query = db.query(Service).filter(Service.status == ServiceStatus.PUBLISHED)
        if service_type is not None:
            query = query.filter(Service.type == service_type)
        return query.order_by(Service.created_at.desc(), Service.id.desc()).all()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@router.get('/{service_id}', response_model=ServiceResponse)
def get_published_service(service_id: int, db: Session = Depends(get_db)):
    try:
        service = db.query(Service).filter(
            Service.id == service_id,
            Service.status == ServiceStatus.PUBLISHED,
        ).first()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc

    if service is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Service not found.')
    return service


@admin_router.get('', response_model=list[ServiceResponse])
def list_all_services(
    db: Session = Depends(get_db),
    admin: User = Depends(require_capability(Capability.MANAGE_SERVICES)),
):
    del admin
    try:
        return db.query(Service).order_by(Service.created_at.desc(), Service.id.desc()).all()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@admin_router.post('', response_model=ServiceResponse, status_code=status.HTTP_201_CREATED)
def create_service(
    data: ServiceRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_capability(Capability.MANAGE_SERVICES)),
):
    del admin
    try:
        service = Service()
        apply_service_fields(service, data)
        db.add(service)
        db.commit()
        db.refresh(service)
        return service
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@admin_router.put('/{service_id}', response_model=ServiceResponse)
def update_service(
    service_id: int,
    data: ServiceRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_capability(Capability.MANAGE_SERVICES)),
):
    del admin
    try:
        service = db.query(Service).filter(Service.id == service_id).first()
        if service is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Service not found.')

        apply_service_fields(service, data)
        db.commit()
        db.refresh(service)
        return service
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@admin_router.delete('/{service_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_service(
    service_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_capability(Capability.MANAGE_SERVICES)),
):
    del admin
    try:
        service = db.query(Service).filter(Service.id == service_id).first()
        if service is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Service not found.')

        in_use = db.query(Enrollment.id).filter(Enrollment.service_id == service_id).first()
        if in_use:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail='Service has enrollments; archive it instead.',
            )

        db.delete(service)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc
