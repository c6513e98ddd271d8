# Overview: Access and plan decorators for API routes.

from functools import wraps
from flask import current_app, request, jsonify

from .errors import AccessResolutionError, ValidationError
from .services import access_service, plan_limits


def _request_user_id():
    """Caller uid from the JSON body, falling back to the query string."""
    data = request.get_json(silent=True)
    if isinstance(data, dict) and data.get("userId"):
        return data.get("userId")
    return request.args.get("userId")


def _deny(user_id, tenant_id, event_type, reason, **extra):
    access_service.log_security_event(
        user_id=user_id,
        tenant_id=tenant_id,
        event_type=event_type,
        success=False,
        resource=request.path,
        action=request.method,
        reason=reason,
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
    )
    current_app.logger.warning("%s: user=%s path=%s reason=%s", event_type, user_id, request.path, reason)
    body = {"success": False, "error": "Permission denied", "message": reason}
    body.update(extra)
    return jsonify(body), 403


def _guarded(f, check):
    """Resolve the caller, run `check(context)` and pass the context on as `access`."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user_id = _request_user_id()
        try:
            context = access_service.resolve_access(user_id)
        except ValidationError as e:
            return jsonify({"success": False, "error": str(e)}), 400
        except AccessResolutionError as e:
            current_app.logger.exception("Access resolution failed for %s", user_id)
            return _deny(user_id, None, "ACCESS_RESOLUTION_FAILED", str(e))

        if not context.authorized:
            return _deny(
                context.user_id,
                context.tenant_id,
                "INACTIVE_STAFF_DENIED",
                context.reason or "Access denied",
            )

        denial = check(context)
        if denial is not None:
            return denial

        kwargs["access"] = context
        return f(*args, **kwargs)

    return decorated_function


def require_access(permission: str | None = None):
    """
    Resolve the caller and optionally require a permission.

    The resolved AccessContext is passed to the view as the `access` keyword
    argument; views scope every query by access.tenant_id.

    SECURITY: Returns 403 when
    - the access store cannot be read (fails closed)
    - the caller is a staff member whose status is not active
    - the caller lacks `permission`
    Every denial is written to security_events.
    """
    def check(context):
        if permission and not access_service.has_permission(context, permission):
            return _deny(
                context.user_id,
                context.tenant_id,
                "PERMISSION_DENIED",
                f"Missing permission: {permission}",
                required_permission=permission,
            )
        return None

    def decorator(f):
        return _guarded(f, check)
    return decorator


def require_any_access(*permission_codes: str):
    """
    Like require_access, but any one of `permission_codes` is enough.

    Used for read endpoints shared by several workflow roles.
    """
    def check(context):
        if not any(access_service.has_permission(context, code) for code in permission_codes):
            return _deny(
                context.user_id,
                context.tenant_id,
                "PERMISSION_DENIED",
                f"Missing any of: {', '.join(permission_codes)}",
                required_permissions=list(permission_codes),
            )
        return None

    def decorator(f):
        return _guarded(f, check)
    return decorator


def require_plan(feature: str):
    """
    Require the tenant's plan to allow one more use of `feature`.

    Must be applied below @require_access so the resolved context is
    available. Super-admins are not gated.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            context = kwargs.get("access")
            if context is None:
                return jsonify({"success": False, "error": "Authentication required"}), 401
            if context.is_super_admin:
                return f(*args, **kwargs)

            check = plan_limits.check_plan_limit(context.tenant_id, feature)
            if not check.allowed:
                access_service.log_security_event(
                    user_id=context.user_id,
                    tenant_id=context.tenant_id,
                    event_type="PLAN_FEATURE_DENIED",
                    success=False,
                    resource=request.path,
                    action=request.method,
                    reason=check.message,
                    ip_address=request.remote_addr,
                    user_agent=request.headers.get("User-Agent"),
                )
                return jsonify({
                    "success": False,
                    "error": check.message,
                    "planCheck": check.to_dict(),
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
