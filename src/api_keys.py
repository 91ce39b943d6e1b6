import base64
import binascii
import logging
import os
import re
from typing import Dict

logger = logging.getLogger("resona.keys")

REQUIRED_KEYS = [
    "VAPI_PRIVATE_KEY",
    "VAPI_PUBLIC_KEY",
    "GROQ_API_KEY",
    "ANTHROPIC_API_KEY",
    "ELEVENLABS_API_KEY",
]

_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)


class ApiKeyError(Exception):
    pass


class MissingApiKeyError(ApiKeyError):
    pass


def decode_api_key(encoded: str) -> str:
    try:
        return base64.b64decode(encoded.strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
        logger.error("Failed to decode API key: %s", exc)
        raise ApiKeyError("Invalid API key format") from exc


def encode_api_key(key: str) -> str:
    return base64.b64encode(key.encode("utf-8")).decode("ascii")


def resolve_key(env_name: str, prefix: str | None = None) -> str:
    """Return the usable key stored in ``env_name``.

    Keys may be kept raw or base64 encoded. A raw value carrying the vendor's
    known prefix is used as-is; anything else is decoded.
    """
    raw = (os.getenv(env_name) or "").strip()
    if not raw:
        raise MissingApiKeyError(f"{env_name} environment variable is not set")
    if prefix and raw.startswith(prefix):
        return raw
    return decode_api_key(raw)


def validate_api_keys() -> None:
    missing = [k for k in REQUIRED_KEYS if not (os.getenv(k) or "").strip()]
    if missing:
        raise MissingApiKeyError(f"Missing required environment variables: {', '.join(missing)}")


def mask_key(key: str) -> str:
    return (key or "")[:8] + "..."


def _resolved_or_none(env_name: str, prefix: str | None = None) -> str | None:
    try:
        return resolve_key(env_name, prefix)
    except ApiKeyError:
        return None


def key_report() -> Dict[str, object]:
    present = {
        "groq": bool(os.getenv("GROQ_API_KEY")),
        "anthropic": bool(os.getenv("ANTHROPIC_API_KEY")),
        "elevenlabs": bool(os.getenv("ELEVENLABS_API_KEY")),
        "vapi_private": bool(os.getenv("VAPI_PRIVATE_KEY")),
        "vapi_public": bool(os.getenv("VAPI_PUBLIC_KEY")),
    }
    groq = _resolved_or_none("GROQ_API_KEY", "gsk_")
    anthropic = _resolved_or_none("ANTHROPIC_API_KEY", "sk-ant-")
    elevenlabs = _resolved_or_none("ELEVENLABS_API_KEY", "sk_")
    # VAPI keys are plain UUIDs and never base64 encoded
    vapi_private = (os.getenv("VAPI_PRIVATE_KEY") or "").strip()
    vapi_public = (os.getenv("VAPI_PUBLIC_KEY") or "").strip()
    validated = {
        "groq": bool(groq) and groq.startswith("gsk_") and len(groq) > 20,
        "anthropic": bool(anthropic) and anthropic.startswith("sk-ant-") and len(anthropic) > 20,
        "elevenlabs": bool(elevenlabs) and elevenlabs.startswith("sk_") and len(elevenlabs) > 20,
        "vapi_private": bool(_UUID_RE.match(vapi_private)),
        "vapi_public": bool(_UUID_RE.match(vapi_public)),
    }
    return {
        "keysPresent": present,
        "keysValidated": validated,
        "allValid": all(validated.values()),
        "summary": {
            "total": len(present),
            "present": sum(1 for v in present.values() if v),
            "valid": sum(1 for v in validated.values() if v),
        },
    }
