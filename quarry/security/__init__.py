# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Secrets handling."""

from .encryption import (
    SecretBox,
    decrypt,
    decrypt_connection_config,
    decrypt_json,
    derive_key,
    encrypt,
    encrypt_json,
)

__all__ = [
    "SecretBox",
    "decrypt",
    "decrypt_connection_config",
    "decrypt_json",
    "derive_key",
    "encrypt",
    "encrypt_json",
]
