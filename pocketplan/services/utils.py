# pocketplan/services/utils.py
import base64
import hashlib
import logging
import math
import os
import datetime as dt
from typing import Any, Optional, Tuple

import resend
from flask import abort, current_app, session

logger = logging.getLogger(__name__)


def canonicalize_email(email: str) -> str:
    """Lower-case and trim."""
    return str(email or "").strip().lower()


def user_id_for_email(email: str, length: int = 20) -> str:
    """
    Return a URL-safe short id. We hash the canonical email so store paths
    and table rows don't expose emails directly.
    """
    c = canonicalize_email(email)
    digest = hashlib.sha256(c.encode("utf-8")).digest()
    b32 = base64.b32encode(digest).decode("ascii").rstrip("=")
    return b32[:length].lower()


def current_user_identity() -> Tuple[Optional[str], str]:
    """
    Returns (user_email, user_id) from the session or 401 if not logged in.
    With AUTH_DISABLED the configured USER_ID is used instead.
    """
    if current_app.config.get("AUTH_DISABLED"):
        return session.get("user_email"), current_app.config["USER_ID"]
    email = session.get("user_email")
    uid = session.get("user_id")
    if not email or not uid:
        abort(401)
    return email, uid


def user_prefix(user_id: str) -> str:
    # All of a user's archived documents live under this prefix
    return f"profiles/{user_id}/"


def to_float(v: Any) -> Optional[float]:
    """Lenient numeric cast for form/JSON input; None when not a finite number."""
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, (int, float)):
        s = v
    else:
        s = str(v).strip().replace(",", "").lstrip("$")
        if not s:
            return None
    try:
        f = float(s)
    except (ValueError, OverflowError):
        return None
    # inf/nan can't be stored as JSON
    return f if math.isfinite(f) else None


# ---------- Time helpers ----------
def utcnow() -> dt.datetime:
    return dt.datetime.utcnow().replace(microsecond=0)


def now_iso() -> str:
    return utcnow().isoformat() + "Z"


def month_window(today_utc: Optional[dt.date] = None) -> Tuple[dt.date, dt.date]:
    """First of current month -> first of next month."""
    if today_utc is None:
        today_utc = utcnow().date()
    start = today_utc.replace(day=1)
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start, end


def add_months(d: dt.date, months: int) -> dt.date:
    """Calendar month arithmetic, clamping the day to the target month's length."""
    y, m = divmod(d.month - 1 + months, 12)
    y += d.year
    m += 1
    for day in (d.day, 30, 29, 28):
        try:
            return d.replace(year=y, month=m, day=day)
        except ValueError:
            continue
    return d.replace(year=y, month=m, day=28)


# ---------- Email ----------
def send_email(to, subject, text=None, html=None, *, from_addr=None, reply_to=None, tags=None):
    mode = (current_app.config.get("EMAIL_MODE") or "console").lower()
    api_key = current_app.config.get("RESEND_API_KEY") or os.getenv("RESEND_API_KEY", "")
    from_addr = from_addr or current_app.config.get("MAIL_FROM")

    if isinstance(to, str):
        to_list = [to]
    else:
        to_list = [x for x in (to or []) if x]

    if not to_list:
        return False, "Missing recipient"

    if not (text or html):
        text = "(no body)"

    # Console/dev mode: log and succeed
    if mode != "provider":
        logger.info("[EMAIL:console] from=%s to=%s subject=%s\n%s",
                    from_addr, ", ".join(to_list), subject, text or html)
        return True, None

    if not api_key:
        return False, "RESEND_API_KEY not configured"

    try:
        resend.api_key = api_key
        payload: dict = {
            "from": from_addr,
            "to": to_list,
            "subject": subject,
        }
        if text:
            payload["text"] = text
        if html:
            payload["html"] = html
        if reply_to:
            payload["reply_to"] = reply_to
        if tags:
            payload["tags"] = [{"name": t} if isinstance(t, str) else t for t in tags]

        result = resend.Emails.send(payload)
        if not isinstance(result, dict) or not result.get("id"):
            return False, "Resend: no message ID returned"
        return True, None

    except Exception as e:
        # Resend SDK can raise ResendError or transport errors
        logger.exception("Resend send failed")
        return False, f"Resend error: {e}"
