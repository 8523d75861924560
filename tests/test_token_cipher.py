try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import pytest

from nextstep.services.token_cipher import TokenCipherService


def test_stored_token_is_encrypted_and_recoverable() -> None:
    cipher = TokenCipherService(secret="local-storage-secret")
    id_token = "header.payload.signature"

    encrypted = cipher.encrypt(id_token)

    assert encrypted != id_token
    assert cipher.decrypt(encrypted) == id_token


def test_token_from_another_secret_is_rejected() -> None:
    encrypted = TokenCipherService(secret="first").encrypt("header.payload.signature")

    with pytest.raises(ValueError):
        TokenCipherService(secret="second").decrypt(encrypted)


def test_plain_jwt_is_not_mistaken_for_ciphertext() -> None:
    with pytest.raises(ValueError):
        TokenCipherService(secret="secret").decrypt("header.payload.signature")


def test_empty_secret_is_refused() -> None:
    with pytest.raises(ValueError):
        TokenCipherService(secret="")
