# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Tests for AES-GCM secret handling."""

import pytest

from quarry.core.errors import EncryptionError
from quarry.security import (
    SecretBox,
    decrypt,
    decrypt_connection_config,
    encrypt,
    encrypt_json,
)


@pytest.fixture
def key_env(monkeypatch):
    monkeypatch.setenv("QUARRY_ENCRYPTION_KEY", "test-secret")
    return "QUARRY_ENCRYPTION_KEY"


class TestSecretBox:

    def test_payload_format(self):
        payload = SecretBox("k").encrypt("hello")
        iv, tag, cipher = payload.split(":")

        assert len(bytes.fromhex(iv)) == 12
        assert len(bytes.fromhex(tag)) == 16
        assert len(bytes.fromhex(cipher)) == len("hello")

    def test_decrypts_own_output(self):
        box = SecretBox("k")
        assert box.decrypt(box.encrypt("pässwörd")) == "pässwörd"

    def test_fresh_iv_each_time(self):
        box = SecretBox("k")
        assert box.encrypt("same") != box.encrypt("same")

    def test_wrong_key(self):
        payload = SecretBox("right").encrypt("data")
        with pytest.raises(EncryptionError, match="wrong key or tampered"):
            SecretBox("wrong").decrypt(payload)

    def test_tampered_ciphertext(self):
        box = SecretBox("k")
        iv, tag, cipher = box.encrypt("data").split(":")
        flipped = f"{int(cipher[:2], 16) ^ 1:02x}{cipher[2:]}"
        with pytest.raises(EncryptionError):
            box.decrypt(f"{iv}:{tag}:{flipped}")

    @pytest.mark.parametrize("payload", ["no-colons", "a:b", "zz:zz:zz", "00:00:00"])
    def test_malformed_payloads(self, payload):
        with pytest.raises(EncryptionError, match="Invalid encrypted payload"):
            SecretBox("k").decrypt(payload)

    def test_empty_secret(self):
        with pytest.raises(EncryptionError):
            SecretBox("")


class TestEnvironmentKey:

    def test_module_functions_use_env_key(self, key_env):
        assert decrypt(encrypt("value")) == "value"

    def test_missing_env_var(self, monkeypatch):
        monkeypatch.delenv("QUARRY_TEST_NO_KEY", raising=False)
        with pytest.raises(EncryptionError, match="QUARRY_TEST_NO_KEY"):
            encrypt("x", env_var="QUARRY_TEST_NO_KEY")

    def test_connection_config(self, key_env):
        stored = encrypt_json({"host": "db", "password": "p"})
        assert decrypt_connection_config(stored) == {"host": "db", "password": "p"}

    def test_plain_config_passes_through(self):
        assert decrypt_connection_config({"host": "db"}) == {"host": "db"}

    def test_non_object_config_rejected(self, key_env):
        with pytest.raises(EncryptionError, match="not an object"):
            decrypt_connection_config(encrypt_json([1, 2]))
