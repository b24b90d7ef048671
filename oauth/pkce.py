"""PKCE (Proof Key for Code Exchange) verification, RFC 7636.

The verifier understands both ``S256`` and ``plain``. The /authorize
endpoint only ever admits ``S256``, so ``plain`` sessions never exist in
practice.
"""

import base64
import hashlib
import hmac


def compute_code_challenge(code_verifier: str) -> str:
    """BASE64URL(SHA256(code_verifier)) without padding."""
    digest = hashlib.sha256(code_verifier.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def verify_code_challenge(code_verifier: str, code_challenge: str, method: str) -> bool:
    """Check a client's code_verifier against the stored code_challenge.

    Unknown methods never verify. Comparison is constant-time.
    """
    if method == "S256":
        expected = compute_code_challenge(code_verifier)
    elif method == "plain":
        expected = code_verifier
    else:
        return False

    return hmac.compare_digest(expected.encode("utf-8"), code_challenge.encode("utf-8"))
