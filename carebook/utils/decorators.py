from functools import wraps
from flask import current_app, g, jsonify
from flask_jwt_extended import get_jwt, get_jwt_identity, verify_jwt_in_request

from carebook.services.visibility import Actor, ROLES


def get_current_actor():
    """
    Build the Actor for this request from the verified JWT.

    The identity service puts the user id in `sub` and the role in the
    configured role claim. Returns None when the role is not one this core
    knows about.
    """
    identity = get_jwt_identity()
    role = get_jwt().get(current_app.config.get('JWT_ROLE_CLAIM', 'role'))
    if identity is None or role not in ROLES:
        return None
    return Actor(id=str(identity), role=role)


def actor_required(*roles):
    """
    Decorator that verifies the JWT and exposes the caller as `g.actor`
    Usage: @actor_required() or @actor_required('admin')
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            verify_jwt_in_request()
            actor = get_current_actor()
            if actor is None:
                return jsonify({
                    'success': False,
                    'error': 'Permission denied. Unknown role'
                }), 403

            if roles and actor.role not in roles:
                return jsonify({
                    'success': False,
                    'error': f'Permission denied. Required roles: {", ".join(roles)}'
                }), 403

            g.actor = actor
            return f(*args, **kwargs)
        return decorated_function
    return decorator
