from fastapi import APIRouter, Query, Request

from advisory_hub.access.gate import CALLBACK_PARAM, SIGN_IN_PATH
from advisory_hub.access.middleware import extract_session_token
from advisory_hub.auth import jwt_handler
from advisory_hub.core.errors import TokenInvalid

router = APIRouter(tags=['pages'])

LOGIN_ENDPOINT = '/api/auth/login'


@router.get(SIGN_IN_PATH)
def sign_in_page(callback_url: str | None = Query(default=None, alias=CALLBACK_PARAM)):
    return {
        'status': 'signin',
        'message': 'Sign in with your email and password to continue.',
        'login_endpoint': LOGIN_ENDPOINT,
        'callback_url': callback_url,
    }


@router.get('/pending')
def pending_page():
    return {
        'status': 'pending',
        'message': 'Your account is awaiting admin approval. You will be notified once it has been reviewed.',
    }


@router.get('/rejected')
def rejected_page(request: Request):
    reason = None
    try:
        claims = jwt_handler.read_session_claims(extract_session_token(request))
        reason = claims.rejection_reason
    except TokenInvalid:
        pass
    return {
        'status': 'rejected',
        'message': 'Your account application was not approved. Please contact support if you have questions.',
        'reason': reason,
    }


@router.get('/unauthorized')
def unauthorized_page():
    return {'status': 'unauthorized', 'message': 'You do not have access to this page.'}
