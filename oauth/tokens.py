"""Random secret generation for authorization codes and access tokens."""

import secrets

# Authorization codes are short-lived; access tokens live for an hour and
# get the longer value.
AUTHORIZATION_CODE_LENGTH = 32
ACCESS_TOKEN_LENGTH = 48


def generate_random_string(length: int = 32) -> str:
    """Return a URL-safe random string of exactly ``length`` characters.

    ``length`` bytes are drawn from the OS CSPRNG and base64url-encoded
    without padding, then cut to ``length`` characters.
    """
    if length < 1:
        raise ValueError("length must be a positive integer")
    return secrets.token_urlsafe(length)[:length]


def generate_authorization_code() -> str:
    return generate_random_string(AUTHORIZATION_CODE_LENGTH)


def generate_access_token() -> str:
    return generate_random_string(ACCESS_TOKEN_LENGTH)


def preview(secret: str) -> str:
    """Shortened form of a secret that is safe to put in logs."""
    return f"{secret[:10]}..."


def generate_secret(nbytes: int = 32) -> str:
    """Full base64url encoding of ``nbytes`` random bytes, for static secrets."""
    if nbytes < 1:
        raise ValueError("nbytes must be a positive integer")
    return secrets.token_urlsafe(nbytes)
