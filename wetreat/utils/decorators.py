from functools import wraps
from flask import request, current_app, jsonify, make_response
from flask_jwt_extended import get_jwt, verify_jwt_in_request


def audit_log(action, resource):
    """Logs every API action and its outcome to the audit logger."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            ip_address = request.remote_addr
            resource_id = next(iter(kwargs.values()), None) if kwargs else None

            try:
                raw_response = f(*args, **kwargs)
                response = make_response(raw_response)
            except Exception as e:
                current_app.audit_logger.error(
                    f"Action='{action}', Resource='{resource}', ResourceID='{resource_id}', "
                    f"IP='{ip_address}', Success='False', Details='{type(e).__name__}: {e}'"
                )
                raise

            success = response.status_code < 400
            current_app.audit_logger.info(
                f"Action='{action}', Resource='{resource}', ResourceID='{resource_id}', "
                f"IP='{ip_address}', Success='{success}', Status='{response.status_code}'"
            )
            return response

        return decorated_function
    return decorator


def require_role(*roles):
    """Requires a valid access token whose 'role' claim is one of ``roles``."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            verify_jwt_in_request()
            role = get_jwt().get('role')

            if role not in roles:
                return jsonify({'error': 'Permission denied', 'code': 'FORBIDDEN'}), 403

            return f(*args, **kwargs)
        return decorated_function
    return decorator
