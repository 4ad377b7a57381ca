"""Authentication: password hashing, tokens and admin bootstrap"""

from .credentials import (
    CredentialService,
    TokenClaims,
    hash_password,
    resolve_secret_key,
    verify_password,
)

__all__ = [
    "CredentialService",
    "TokenClaims",
    "hash_password",
    "resolve_secret_key",
    "verify_password",
]
