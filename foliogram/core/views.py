import json
import queue

from flask import Blueprint, Response, current_app, jsonify, request
from flask_login import current_user, login_user, logout_user
from sqlalchemy.exc import SQLAlchemyError

from .. import db, login_manager
from ..models.db_models import User
from ..services.identity import normalize_identifier, resolve_user

core_bp = Blueprint("core", __name__)

USER_ROLES = ("user", "recruiter")


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({"status": "error", "message": "Authentication required"}), 401


@core_bp.route("/health")
def health():
    return jsonify({"status": "success", "data": {"app": "Foliogram"}})


@core_bp.route("/register", methods=["POST"])
def register():
    data = request.get_json(silent=True) or request.form
    username = (data.get("username") or "").strip()
    email = normalize_identifier(data.get("email"))
    password = data.get("password") or ""
    role = data.get("role") or "user"

    if not username or not email or not password:
        return jsonify({"status": "error", "message": "Username, email and password are required"}), 400
    if role not in USER_ROLES:
        return jsonify({"status": "error", "message": f"Unknown role: {role}"}), 400
    if resolve_user(username) is not None or resolve_user(email) is not None:
        return jsonify({"status": "error", "message": "Username or email already registered"}), 409

    user = User(
        username=username,
        email=email,
        first_name=data.get("first_name"),
        last_name=data.get("last_name"),
        contact_number=data.get("contact_number"),
        role=role,
    )
    user.set_password(password)
    db.session.add(user)
    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Error registering user {username}: {e}")
        return jsonify({"status": "error", "message": "Registration failed"}), 500
    current_app.logger.info(f"Registered user {username} ({role}).")
    return jsonify({"status": "success", "data": user.to_dict()}), 201


@core_bp.route("/login", methods=["POST"])
def login():
    data = request.get_json(silent=True) or request.form
    identifier = data.get("username") or data.get("email")
    password_candidate = data.get("password") or ""
    user_obj = resolve_user(identifier)
    if user_obj and user_obj.check_password(password_candidate):
        login_user(user_obj)
        current_app.logger.info(f"User {user_obj.username} logged in.")
        return jsonify({"status": "success", "data": user_obj.to_dict()})
    return jsonify({"status": "error", "message": "Invalid login"}), 401


@core_bp.route("/logout", methods=["POST", "GET"])
def logout():
    if current_user.is_authenticated:
        current_app.logger.info(f"User {current_user.username} logged out.")
    logout_user()
    return jsonify({"status": "success", "data": None})


@core_bp.route("/notifications/stream")
def user_notification_stream():
    if not current_user.is_authenticated:
        return unauthorized()
    current_user_id_val = current_user.id
    logger = current_app.logger
    queues = current_app.user_notification_queues
    q_local = queue.Queue(maxsize=current_app.config.get("SSE_QUEUE_MAXSIZE", 100))
    queues.setdefault(current_user_id_val, []).append(q_local)
    logger.info(
        f"User {current_user_id_val} connected to notification stream. Queues: {len(queues[current_user_id_val])}"
    )

    def event_stream():
        try:
            while True:
                data = q_local.get()
                if data is None:
                    logger.info(f"Stream for user {current_user_id_val} closing.")
                    break
                event_type = data.get("type", "message")
                payload = data.get("payload", {})
                yield f"event: {event_type}\ndata: {json.dumps(payload)}\n\n"
                logger.debug(f"Sent event {event_type} to user {current_user_id_val}")
        except GeneratorExit:
            logger.info(f"User {current_user_id_val} disconnected (GeneratorExit).")
        finally:
            logger.info(f"Cleaning up queue for user {current_user_id_val}.")
            if q_local in queues.get(current_user_id_val, []):
                queues[current_user_id_val].remove(q_local)
            if not queues.get(current_user_id_val):
                queues.pop(current_user_id_val, None)

    return Response(event_stream(), mimetype="text/event-stream")
