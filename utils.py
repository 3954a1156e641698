import jwt
import time
from typing import Optional, Dict, Any
from bson import ObjectId
from bson.errors import InvalidId

from config import settings
from errors import ValidationError

SECRET_KEY = settings.secret_key
ALGORITHM = settings.jwt_algorithm


def now_ms() -> int:
    """Current time as epoch milliseconds, the unit every stored timestamp uses."""
    return int(time.time() * 1000)


def to_object_id(value: str, label: str = "ID") -> ObjectId:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise ValidationError(f"Invalid {label} format")


def serialize_doc(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Swap Mongo's `_id` for a string `id`."""
    if doc is None:
        return None
    doc = dict(doc)
    doc["id"] = str(doc.pop("_id"))
    return doc


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """Decode and verify JWT access token"""
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        return payload
    except jwt.PyJWTError:
        return None


def verify_token(token: str) -> Optional[str]:
    """Verify token and return user_id if valid"""
    payload = decode_access_token(token)
    if payload is None:
        return None
    user_id = payload.get("user_id")
    return str(user_id) if user_id else None
