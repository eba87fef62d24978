import hmac
from datetime import datetime, timedelta, timezone
from functools import wraps

import jwt
from django.conf import settings
from django.http import JsonResponse

ALGORITHM = "HS256"


def check_admin_password(password: str) -> bool:
    expected = settings.ADMIN_PASSWORD or ""
    if not expected:
        return False
    return hmac.compare_digest(expected.encode(), (password or "").encode())


def issue_admin_token(now=None) -> str:
    """Signed, self-expiring admin session token; nothing is stored server-side."""
    now = now or datetime.now(timezone.utc)
    payload = {
        "sub": "admin",
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(hours=settings.ADMIN_SESSION_HOURS)).timestamp()),
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=ALGORITHM)


def verify_admin_token(token: str) -> bool:
    if not token:
        return False
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.PyJWTError:
        return False
    return payload.get("sub") == "admin"


def admin_required(view):
    @wraps(view)
    def wrapper(request, *args, **kwargs):
        if not verify_admin_token(request.COOKIES.get(settings.ADMIN_SESSION_COOKIE, "")):
            return JsonResponse({"ok": False, "error": "Unauthorized"}, status=401)
        return view(request, *args, **kwargs)
    return wrapper
