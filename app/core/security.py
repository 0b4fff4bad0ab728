from __future__ import annotations

from itsdangerous import URLSafeTimedSerializer, BadSignature, SignatureExpired

from app.core.config import settings

# Signed session cookie shared with the external auth service (stateless)
serializer = URLSafeTimedSerializer(settings.SECRET_KEY, salt="fault_routing_sid")


def sign_session(payload: dict) -> str:
    return serializer.dumps(payload)


def verify_session(token: str, max_age_seconds: int | None = None) -> dict | None:
    try:
        return serializer.loads(token, max_age=max_age_seconds or settings.SESSION_MAX_AGE_SECONDS)
    except (BadSignature, SignatureExpired):
        return None
