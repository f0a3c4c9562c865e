"""Tests for integration secret encryption."""

import pytest

from app.integratepdf.services.encryption import (
    ENCRYPTED_PREFIX,
    MASKED_VALUE,
    EncryptionError,
    decrypt_config,
    decrypt_secret,
    encrypt_config,
    encrypt_secret,
    is_encrypted,
    mask_config,
)

KEY = "unit-test-master-key"


class TestSecrets:
    """Tests for single value encryption."""

    def test_round_trip(self):
        encrypted = encrypt_secret("secret_abc", KEY)
        assert encrypted.startswith(ENCRYPTED_PREFIX)
        assert "secret_abc" not in encrypted
        assert decrypt_secret(encrypted, KEY) == "secret_abc"

    def test_random_salt(self):
        assert encrypt_secret("same", KEY) != encrypt_secret("same", KEY)

    def test_already_encrypted_is_unchanged(self):
        encrypted = encrypt_secret("value", KEY)
        assert encrypt_secret(encrypted, KEY) == encrypted

    def test_plain_value_passes_through_decrypt(self):
        assert decrypt_secret("legacy-plain-token", KEY) == "legacy-plain-token"

    def test_wrong_key(self):
        encrypted = encrypt_secret("value", KEY)
        with pytest.raises(EncryptionError, match="Invalid encryption data or key"):
            decrypt_secret(encrypted, "another-key")

    def test_corrupted_value(self):
        with pytest.raises(EncryptionError):
            decrypt_secret(f"{ENCRYPTED_PREFIX}no-separator", KEY)

    def test_missing_master_key(self):
        with pytest.raises(EncryptionError, match="ENCRYPTION_KEY"):
            encrypt_secret("value", "")


class TestConfigs:
    def test_only_secret_keys_are_encrypted(self):
        config = {"api_key": "secret_abc", "database_id": "db-1", "refresh_token": ""}
        encrypted = encrypt_config(config, KEY)

        assert is_encrypted(encrypted["api_key"])
        assert encrypted["database_id"] == "db-1"
        assert encrypted["refresh_token"] == ""
        assert config["api_key"] == "secret_abc"
        assert decrypt_config(encrypted, KEY) == config

    def test_mask(self):
        masked = mask_config({"access_token": "enc:v1:x", "spreadsheet_id": "s-1", "api_key": None})
        assert masked == {"access_token": MASKED_VALUE, "spreadsheet_id": "s-1", "api_key": None}
