# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""AES-256-GCM encryption for connection secrets at rest.

The key is the SHA-256 digest of a secret read from the environment.
Payloads are text of the form ``ivHex:tagHex:cipherHex``.
"""

import json
import logging
import os
import secrets
from typing import Any, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from quarry.core.errors import EncryptionError

logger = logging.getLogger(__name__)

DEFAULT_KEY_ENV = "QUARRY_ENCRYPTION_KEY"
IV_LENGTH = 12
TAG_LENGTH = 16


def derive_key(secret: str) -> bytes:
    """32-byte key from an arbitrary secret string."""
    digest = hashes.Hash(hashes.SHA256())
    digest.update(secret.encode("utf-8"))
    return digest.finalize()


class SecretBox:
    """Encrypts and decrypts strings with one derived key.

    Usage:
        box = SecretBox.from_env()
        token = box.encrypt("s3cret")
        box.decrypt(token)  # "s3cret"
    """

    def __init__(self, secret: str):
        if not secret:
            raise EncryptionError("Encryption secret is empty")
        self._aead = AESGCM(derive_key(secret))

    @classmethod
    def from_env(cls, env_var: str = DEFAULT_KEY_ENV) -> "SecretBox":
        secret = os.environ.get(env_var)
        if not secret:
            raise EncryptionError(f"Environment variable not set: {env_var}")
        return cls(secret)

    def encrypt(self, plaintext: str) -> str:
        iv = secrets.token_bytes(IV_LENGTH)
        sealed = self._aead.encrypt(iv, plaintext.encode("utf-8"), None)
        # AESGCM appends the tag to the ciphertext
        cipher, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return f"{iv.hex()}:{tag.hex()}:{cipher.hex()}"

    def decrypt(self, payload: str) -> str:
        parts = payload.split(":") if isinstance(payload, str) else []
        if len(parts) != 3:
            raise EncryptionError("Invalid encrypted payload: expected iv:tag:ciphertext")
        try:
            iv, tag, cipher = (bytes.fromhex(p) for p in parts)
        except ValueError as e:
            raise EncryptionError(f"Invalid encrypted payload: {e}") from e
        if len(iv) != IV_LENGTH or len(tag) != TAG_LENGTH:
            raise EncryptionError("Invalid encrypted payload: bad iv or tag length")
        try:
            plaintext = self._aead.decrypt(iv, cipher + tag, None)
        except InvalidTag as e:
            raise EncryptionError("Decryption failed: wrong key or tampered payload") from e
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise EncryptionError(f"Decrypted payload is not UTF-8: {e}") from e

    def encrypt_json(self, data: Any) -> str:
        try:
            text = json.dumps(data)
        except (TypeError, ValueError) as e:
            raise EncryptionError(f"Value is not JSON serializable: {e}") from e
        return self.encrypt(text)

    def decrypt_json(self, payload: str) -> Any:
        text = self.decrypt(payload)
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise EncryptionError(f"Decrypted payload is not JSON: {e}") from e


def encrypt(plaintext: str, env_var: str = DEFAULT_KEY_ENV) -> str:
    return SecretBox.from_env(env_var).encrypt(plaintext)


def decrypt(payload: str, env_var: str = DEFAULT_KEY_ENV) -> str:
    return SecretBox.from_env(env_var).decrypt(payload)


def encrypt_json(data: Any, env_var: str = DEFAULT_KEY_ENV) -> str:
    return SecretBox.from_env(env_var).encrypt_json(data)


def decrypt_json(payload: str, env_var: str = DEFAULT_KEY_ENV) -> Any:
    return SecretBox.from_env(env_var).decrypt_json(payload)


def decrypt_connection_config(
    encrypted: str | dict, env_var: Optional[str] = None
) -> dict[str, Any]:
    """Decrypt a connection config stored as one JSON payload.

    Plain dicts pass through so callers can mix stored and inline configs.
    """
    if isinstance(encrypted, dict):
        return encrypted
    data = decrypt_json(encrypted, env_var or DEFAULT_KEY_ENV)
    if not isinstance(data, dict):
        raise EncryptionError("Decrypted connection config is not an object")
    logger.debug("Decrypted connection config")
    return data
