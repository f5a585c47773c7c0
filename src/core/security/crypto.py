from __future__ import annotations

from cryptography.fernet import Fernet, InvalidToken, MultiFernet

from src.core.config import settings


class EncryptionError(ValueError):
    pass


class SecurityCipher:
    """Encrypts CRM credential fields; the first key encrypts, every key decrypts."""

    def __init__(self, fernet_keys: str) -> None:
        keys = [key.strip() for key in fernet_keys.split(",") if key.strip()]
        if not keys:
            raise EncryptionError("At least one Fernet key is required")
        self._fernet = MultiFernet([Fernet(key.encode("utf-8")) for key in keys])

    def encrypt(self, plaintext: str) -> str:
        token = self._fernet.encrypt(plaintext.encode("utf-8"))
        return token.decode("utf-8")

    def decrypt(self, ciphertext: str) -> str:
        try:
            plaintext = self._fernet.decrypt(ciphertext.encode("utf-8"))
        except InvalidToken as exc:
            raise EncryptionError("Unable to decrypt value") from exc
        return plaintext.decode("utf-8")


def get_security_cipher() -> SecurityCipher:
    keys = (settings.master_encryption_key or "").strip()
    if not keys or keys == "replace_with_fernet_key":
        raise ValueError("MASTER_ENCRYPTION_KEY is not configured with a valid Fernet key")
    return SecurityCipher(keys)
