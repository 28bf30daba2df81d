"""
Seals arbitrary JSON-serializable values into opaque tokens and opens them again.

The key is derived from a fixed application constant combined with a string
identifying the execution environment, so a token written on one machine does
not open on a materially different one. This is a weak binding against
copy-paste between environments, not a security boundary.
"""
import base64
import hashlib
import json
import logging
from typing import Any, Optional

from cryptography.fernet import Fernet

from config import APP_SECRET, ENVIRONMENT_ID


def _fernet(environment_id: Optional[str] = None) -> Fernet:
    raw = APP_SECRET + (ENVIRONMENT_ID if environment_id is None else environment_id)
    digest = hashlib.sha256(raw.encode("utf-8")).digest()
    return Fernet(base64.urlsafe_b64encode(digest))


def seal(value: Any, environment_id: Optional[str] = None) -> str:
    """
    Serializes `value` to canonical JSON and encrypts it.

    Args:
        value: Any JSON-serializable value.
        environment_id: Overrides the configured environment string.

    Returns:
        An opaque URL-safe token.

    Raises:
        TypeError: If `value` is not JSON-serializable.
    """
    text = json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return _fernet(environment_id).encrypt(text.encode("utf-8")).decode("ascii")


def unseal(token: Any, environment_id: Optional[str] = None) -> Any:
    """
    Decrypts and parses a token produced by `seal`.

    Never raises: a token that is not a string, was sealed in another
    environment, is malformed, or does not hold valid JSON yields None.
    """
    if not isinstance(token, str) or not token:
        return None
    try:
        plaintext = _fernet(environment_id).decrypt(token.encode("ascii"))
        return json.loads(plaintext.decode("utf-8"))
    except Exception as e:
        logging.warning(f"Could not open sealed token: {type(e).__name__}")
        return None
