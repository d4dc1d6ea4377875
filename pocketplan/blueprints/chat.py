# pocketplan/blueprints/chat.py
from flask import Blueprint, jsonify, request

from ..services.chat import handle_message
from ..services.utils import current_user_identity

bp = Blueprint("chat", __name__)


@bp.post("/chat")
def chat():
    _, user_id = current_user_identity()
    body = request.get_json(silent=True) or {}
    if not isinstance(body, dict):
        raise ValueError("Expected a JSON object")
    message = str(body.get("message") or "").strip()
    if not message:
        raise ValueError("message is required")
    return jsonify(handle_message(user_id, message))
