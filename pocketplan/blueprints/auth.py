# pocketplan/blueprints/auth.py
import hmac
import json
import time
import secrets
import hashlib
from urllib.parse import urlencode

from flask import Blueprint, current_app, jsonify, request, session

from ..models import db, Profile
from ..services.utils import canonicalize_email, send_email, user_id_for_email

bp = Blueprint("auth", __name__)

TOKEN_TTL_SECS = 900

# =============================================================================
# Storage helpers (NO session required here)
# =============================================================================

def _pending_path(tid: str) -> str:
    """
    Global location for pending magic-link tokens.
    We cannot depend on session/user_id before the user is authenticated.
    """
    return f"auth/pending/{tid}.json"

# =============================================================================
# Token helpers
# =============================================================================

def _sign(payload: str) -> str:
    secret = current_app.config["MAGIC_TOKEN_SECRET"]
    return hmac.new(secret.encode(), payload.encode(), hashlib.sha256).hexdigest()

def create_magic_token(email: str, ttl_secs: int = TOKEN_TTL_SECS) -> str:
    tid = secrets.token_urlsafe(16)                  # token id (non-secret)
    exp = int(time.time()) + int(ttl_secs)
    payload = json.dumps({"tid": tid, "email": email, "exp": exp}, separators=(",", ":"))
    token = f"{payload}.{_sign(payload)}"

    # server-side record for single use
    current_app.store.write_json(_pending_path(tid), {"email": email, "exp": exp, "used": False})
    return token

def parse_and_validate(token: str):
    """(data, None) for a usable token, (None, reason) otherwise."""
    try:
        payload, sig = token.rsplit(".", 1)
        data = json.loads(payload)
    except ValueError:
        return None, "invalid-token"
    if not isinstance(data, dict):
        return None, "invalid-token"
    if not hmac.compare_digest(sig, _sign(payload)):
        return None, "bad-signature"
    if int(time.time()) > int(data.get("exp") or 0):
        return None, "expired"

    rec = current_app.store.read_json(_pending_path(data.get("tid", ""))) or {}
    if not rec:
        return None, "missing"
    if rec.get("used"):
        return None, "already-used"
    if rec.get("email") != data.get("email"):
        return None, "email-mismatch"
    return data, None

def mark_used(tid: str):
    rec_path = _pending_path(tid)
    rec = current_app.store.read_json(rec_path) or {}
    rec["used"] = True
    rec["used_at"] = int(time.time())
    current_app.store.write_json(rec_path, rec)

def send_login_link(to_email: str, token: str):
    base = current_app.config["APP_BASE_URL"].rstrip("/")
    link = f"{base}/auth/magic?{urlencode({'token': token})}"
    return send_email(
        to_email,
        "Your pocketplan sign-in link",
        text=f"Click to sign in (valid 15 minutes): {link}",
        tags=["login"],
    )

def ensure_profile(user_id: str, email: str) -> Profile:
    """First-login scaffold: one profile row per user."""
    profile = Profile.query.filter_by(user_id=user_id).first()
    if profile is None:
        profile = Profile(user_id=user_id, email=email, onboarding_data={})
        db.session.add(profile)
        db.session.commit()
        current_app.logger.info("Created profile for user=%s", user_id)
    return profile

# =============================================================================
# Views
# =============================================================================

@bp.post("/login")
def login_submit():
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        body = request.form
    email = canonicalize_email(body.get("email"))
    if not email or "@" not in email:
        return jsonify({"error": "Enter a valid email."}), 400

    token = create_magic_token(email)
    ok, err = send_login_link(email, token)
    if not ok:
        current_app.logger.error("Failed to send login email to %s: %s", email, err)
        return jsonify({"error": f"Could not send email: {err}"}), 502

    return jsonify({"ok": True, "message": "We sent you a sign-in link. Please check your email."})

@bp.get("/auth/magic")
def magic():
    data, err = parse_and_validate(request.args.get("token", ""))
    if err:
        return jsonify({"error": f"Sign-in link invalid: {err}"}), 400

    mark_used(data["tid"])

    email = canonicalize_email(data["email"])
    uid = user_id_for_email(email)

    session.clear()
    session["user_email"] = email
    session["user_id"] = uid
    session["auth_at"] = int(time.time())

    profile = ensure_profile(uid, email)
    return jsonify({"ok": True, "user_id": uid, "profile": profile.to_dict()})

@bp.post("/logout")
def logout():
    session.clear()
    return jsonify({"ok": True})
