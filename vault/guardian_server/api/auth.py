"""
Identity resolution for the HTTP API.

Token issuance and verification belong to an authentication collaborator
in front of this service. The API only needs a way to turn a request into
a tenant id; the Authenticator protocol is that seam. The default
HeaderAuthenticator trusts a header set by the upstream auth proxy.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import os
from typing import Protocol

from fastapi import Request

from ..errors import UnauthorizedError

SCRYPT_N = 2**14
SCRYPT_R = 8
SCRYPT_P = 1


class Authenticator(Protocol):
    """Resolves a request to a tenant id."""

    def authenticate(self, request: Request) -> str:
        """Return the caller's tenant id.

        Raises:
            UnauthorizedError: If the caller cannot be identified
        """
        ...


class HeaderAuthenticator:
    """Reads the tenant id from a trusted request header."""

    def __init__(self, header: str = "X-Tenant-ID") -> None:
        self.header = header

    def authenticate(self, request: Request) -> str:
        tenant_id = request.headers.get(self.header, "").strip()
        if not tenant_id:
            raise UnauthorizedError(f"{self.header} header is required")
        return tenant_id


def hash_password(password: str) -> str:
    """Derive a storable credential with scrypt and a random salt.

    Format: scrypt$<n>$<r>$<p>$<salt b64>$<hash b64>
    """
    salt = os.urandom(16)
    digest = hashlib.scrypt(
        password.encode("utf-8"), salt=salt, n=SCRYPT_N, r=SCRYPT_R, p=SCRYPT_P
    )
    return "$".join(
        [
            "scrypt",
            str(SCRYPT_N),
            str(SCRYPT_R),
            str(SCRYPT_P),
            base64.b64encode(salt).decode("ascii"),
            base64.b64encode(digest).decode("ascii"),
        ]
    )


def verify_password(password: str, stored: str) -> bool:
    """Check a password against a hash_password() credential.

    The server itself never verifies passwords. This is the counterpart
    the upstream authentication collaborator uses against the
    tenants.password_hash column when it issues identities.
    """
    try:
        scheme, n, r, p, salt_b64, digest_b64 = stored.split("$")
    except ValueError:
        return False
    if scheme != "scrypt":
        return False
    digest = hashlib.scrypt(
        password.encode("utf-8"),
        salt=base64.b64decode(salt_b64),
        n=int(n),
        r=int(r),
        p=int(p),
    )
    return hmac.compare_digest(digest, base64.b64decode(digest_b64))
