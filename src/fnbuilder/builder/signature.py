import hashlib
import hmac

from .. import constants


def sign_payload(payload: bytes, secret: str) -> str:
    """Return the `X-Build-Signature` value for `payload`, e.g. `sha256=ab12...`."""
    digest = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()
    return f"{constants.SIGNATURE_ALGORITHM}={digest}"


def verify_signature(payload: bytes, secret: str, header: str) -> bool:
    """Check a signature header against `payload` in constant time."""
    algorithm, _, digest = header.partition("=")
    if algorithm != constants.SIGNATURE_ALGORITHM or not digest:
        return False
    return hmac.compare_digest(sign_payload(payload, secret), f"{algorithm}={digest.lower()}")
