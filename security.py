import base64
import hashlib
import hmac
from config import PASSWORD_SALT

def hash_password(password: str) -> str:
    """Salted SHA-256 digest of a password"""
    return hashlib.sha256(f"{password}{PASSWORD_SALT}".encode()).hexdigest()

def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Constant-time comparison against a stored digest"""
    return hmac.compare_digest(hash_password(plain_password), hashed_password)

def file_checksum(content: bytes) -> str:
    """SHA-256 checksum stored alongside uploaded documents"""
    return hashlib.sha256(content).hexdigest()

def decode_content(encoded: str) -> bytes:
    """Decode base64 upload content, raising ValueError on malformed input"""
    try:
        return base64.b64decode(encoded, validate=True)
    except (ValueError, TypeError) as e:
        raise ValueError("Content must be valid base64") from e
