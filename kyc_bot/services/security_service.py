"""Шифрование чувствительных полей анкеты (AES-GCM)."""
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from loguru import logger

from kyc_bot.exceptions import DecryptionError

NONCE_SIZE = 12


class AESService:
    """
    AES-GCM с случайным nonce, который записывается перед шифротекстом.

    :param key: Ключ длиной 16 (AES-128) или 32 (AES-256) байта.
    """

    def __init__(self, key: bytes):
        if len(key) not in (16, 32):
            raise ValueError(f"invalid key size: {len(key)} bytes, must be 16 or 32")
        self._aead = AESGCM(key)
        logger.info(f"🔐 AES-GCM сервис инициализирован (AES-{len(key) * 8})")

    def encrypt(self, plaintext: bytes) -> bytes:
        nonce = os.urandom(NONCE_SIZE)
        return nonce + self._aead.encrypt(nonce, plaintext, None)

    def decrypt(self, ciphertext: bytes) -> bytes:
        """Расшифровка; при подделке или обрезке данных бросает DecryptionError."""
        if len(ciphertext) <= NONCE_SIZE:
            raise DecryptionError("ciphertext too short")
        nonce, data = ciphertext[:NONCE_SIZE], ciphertext[NONCE_SIZE:]
        try:
            return self._aead.decrypt(nonce, data, None)
        except InvalidTag as e:
            raise DecryptionError("ciphertext authentication failed") from e
