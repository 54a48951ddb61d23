import json
from typing import Any, Dict, Optional

from cryptography.fernet import Fernet
from discount_sync.config import settings


def get_fernet_key():
    """Returns the Fernet key from settings."""
    return Fernet(settings.encryption_key.encode('utf-8'))


def encrypt_data(data: str) -> str:
    """Encrypts a string using Fernet."""
    f = get_fernet_key()
    return f.encrypt(data.encode('utf-8')).decode('utf-8')


def decrypt_data(encrypted_data: str) -> str:
    """Decrypts a string using Fernet."""
    f = get_fernet_key()
    return f.decrypt(encrypted_data.encode('utf-8')).decode('utf-8')


def encrypt_credentials(credentials: Dict[str, Any]) -> str:
    """Serializes and encrypts a credentials dict for storage in a Text column."""
    return encrypt_data(json.dumps(credentials))


def decrypt_credentials(encrypted: Optional[str]) -> Dict[str, Any]:
    """Inverse of encrypt_credentials; an empty column yields an empty dict."""
    if not encrypted:
        return {}
    return json.loads(decrypt_data(encrypted))
