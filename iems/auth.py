import logging
from datetime import datetime, timedelta, timezone
from functools import wraps

import jwt
from flask import request, jsonify, redirect, url_for, flash

from iems import app

logger = logging.getLogger(__name__)

TOKEN_COOKIE = 'token'

def create_token(user) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        'id': user.id,
        'email': user.email,
        'role': user.role,
        'name': user.name,
        'iat': now,
        'exp': now + timedelta(days=int(app.config.get('JWT_EXPIRY_DAYS', 7))),
    }
    return jwt.encode(payload, app.config['JWT_SECRET'], algorithm=app.config.get('JWT_ALGORITHM', 'HS256'))

def verify_token(token):
    """Return the decoded claims, or None when the token is expired or tampered with."""
    try:
        return jwt.decode(token, app.config['JWT_SECRET'], algorithms=[app.config.get('JWT_ALGORITHM', 'HS256')])
    except jwt.ExpiredSignatureError:
        logger.info("Rejected expired token")
        return None
    except jwt.InvalidTokenError:
        logger.info("Rejected invalid token")
        return None

def get_token_from_request():
    # Bearer header wins over the cookie
    auth = request.headers.get('Authorization', '')
    if auth.startswith('Bearer '):
        return auth[7:].strip() or None
    return request.cookies.get(TOKEN_COOKIE)

def current_user():
    """Claims of the authenticated caller for this request, or None."""
    token = get_token_from_request()
    return verify_token(token) if token else None

def set_token_cookie(response, token):
    secure = bool(app.config.get('SECURE_COOKIES', False))
    response.set_cookie(
        TOKEN_COOKIE,
        token,
        httponly=True,
        secure=secure,
        samesite='None' if secure else 'Lax',
        max_age=int(app.config.get('JWT_EXPIRY_DAYS', 7)) * 24 * 60 * 60,
        path='/',
    )
    return response

def token_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if not get_token_from_request():
            return jsonify({'error': 'Authentication required'}), 401
        if current_user() is None:
            return jsonify({'error': 'Invalid or expired token'}), 401
        return fn(*args, **kwargs)
    return wrapper

def roles_required(*roles):
    """Page-level gate: anonymous users go to the login page, other roles to their home page."""
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            user = current_user()
            if user is None:
                flash('Please log in to access this page.', 'warning')
                return redirect(url_for('login', next=request.path))
            if user.get('role') not in roles:
                flash('You are not authorized to view this page.', 'danger')
                return redirect(url_for('index'))
            return fn(*args, **kwargs)
        return wrapper
    return decorator
