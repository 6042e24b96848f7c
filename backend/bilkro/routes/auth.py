# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

Session tokens are returned in the response body and also set as an
HttpOnly cookie, so both bearer and cookie clients work.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service
from ..services import session_service
from ..errors import ServiceError
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _set_session_cookie(response, token: str, session) -> None:
    response.set_cookie(
        current_app.config.get("AUTH_COOKIE_NAME", "bilkro_session"),
        token,
        expires=session.expires_at,
        httponly=True,
        samesite="Lax",
        secure=not current_app.debug and not current_app.testing,
    )


@auth_bp.post("/register")
def register_route():
    """
    Register a customer account and log it in.

    Password must be 8+ chars with upper, lower, digit and special char.
    Admin accounts are only created through the CLI.
    """
    try:
        data = request.get_json(silent=True) or {}
        username = data.get("username")
        email = data.get("email")
        password = data.get("password")

        if not all([username, email, password]):
            return jsonify({"error": "username, email and password required"}), 400

        user = auth_service.create_user(username, email, password)
        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )

        response = jsonify({"user": user.to_dict(), "token": token, "session": session.to_dict()})
        _set_session_cookie(response, token, session)
        return response, 201

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to register user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/login")
def login_route():
    """Authenticate by username or email and create a session token."""
    try:
        data = request.get_json(silent=True) or {}
        identifier = data.get("username") or data.get("email") or data.get("identifier")
        password = data.get("password")

        if not all([identifier, password]):
            return jsonify({"error": "username/email and password required"}), 400

        user = auth_service.authenticate(identifier, password)
        if not user:
            return jsonify({"error": "Invalid credentials"}), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )

        response = jsonify({
            "user": user.to_dict(),
            "token": token,
            "session": session.to_dict(),
            "message": "Login successful",
        })
        _set_session_cookie(response, token, session)
        return response, 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    try:
        session_service.revoke_session(g.session_token, reason="User logout")
        response = jsonify({"message": "Logout successful"})
        response.delete_cookie(current_app.config.get("AUTH_COOKIE_NAME", "bilkro_session"))
        return response, 200

    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"user": g.current_user.to_dict()}), 200
