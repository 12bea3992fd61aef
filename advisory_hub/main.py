import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from advisory_hub.access.middleware import AccessGateMiddleware
from advisory_hub.core import config
from advisory_hub.core.errors import PersistenceError
from advisory_hub.database import DATABASE_UNAVAILABLE_DETAIL, ensure_schema
from advisory_hub.routes import (
    admin_user_routes,
    auth_routes,
    conversation_routes,
    dashboard_routes,
    enrollment_routes,
    feedback_routes,
    meeting_request_routes,
    meeting_routes,
    newsletter_routes,
    page_routes,
    roadmap_routes,
    service_routes,
    session_routes,
)

logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)
logger = logging.getLogger(__name__)

app = FastAPI(title='Advisory Hub API', debug=config.DEBUG)

app.add_middleware(AccessGateMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)


@app.on_event('startup')
def initialize_database() -> None:
    config.validate_runtime_config()
    try:
        ensure_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.exception_handler(PersistenceError)
def handle_persistence_error(request: Request, exc: PersistenceError):
    logger.error('Persistence failure on %s: %s', request.url.path, exc)
    return JSONResponse(status_code=503, content={'detail': DATABASE_UNAVAILABLE_DETAIL})


@app.get('/')
def root():
    return {'status': 'Advisory Hub API Running'}


app.include_router(page_routes.router)
app.include_router(auth_routes.router, prefix='/api/auth')
app.include_router(admin_user_routes.router, prefix='/api/admin/users')
app.include_router(session_routes.router, prefix='/api/admin/sessions')
app.include_router(service_routes.router, prefix='/api/services')
app.include_router(service_routes.admin_router, prefix='/api/admin/services')
app.include_router(enrollment_routes.router, prefix='/api/enrollments')
app.include_router(enrollment_routes.admin_router, prefix='/api/admin/enrollments')
app.include_router(meeting_routes.router, prefix='/api/meetings')
app.include_router(meeting_request_routes.router, prefix='/api/meeting-requests')
app.include_router(conversation_routes.router, prefix='/api/conversations')
app.include_router(conversation_routes.messages_router, prefix='/api/messages')
app.include_router(roadmap_routes.router, prefix='/api/roadmaps')
app.include_router(newsletter_routes.router, prefix='/api/newsletter')
app.include_router(newsletter_routes.admin_router, prefix='/api/admin/newsletter')
app.include_router(dashboard_routes.router, prefix='/api/dashboard')
app.include_router(dashboard_routes.admin_router, prefix='/api/admin/dashboard')
app.include_router(feedback_routes.router, prefix='/api/feedback')
app.include_router(feedback_routes.admin_router, prefix='/api/admin/feedback')
