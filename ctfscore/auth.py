"""
Credential hashing, signed bearer tokens and role checks for the web layer.
"""

import asyncio
import functools
import logging
from typing import Any, Awaitable, Callable, Optional

import bcrypt
from aiohttp import web
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from .errors import Forbidden, Unauthorized
from .models import ROLES, Identity, Team

logger = logging.getLogger(__name__)

TOKEN_SALT = "ctfscore-auth"
IDENTITY_KEY = web.RequestKey("identity", Identity)
AUTH_ERROR_KEY = web.RequestKey("auth_error", Unauthorized)


def hash_password(password: str, rounds: int = 12) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds)).decode("ascii")


def check_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("ascii"))
    except ValueError:
        # Malformed stored hash
        return False


async def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify a password without blocking the event loop.

    @param password: Plaintext password from the login form
    @param password_hash: Stored bcrypt hash
    @return: True if the password matches
    """
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, check_password, password, password_hash)


class TokenSigner:
    """Issues and verifies expiring bearer tokens carrying (team id, role)."""

    def __init__(
        self,
        secret_key: str,
        max_age: int = 86400,
    ) -> None:
        self.serializer = URLSafeTimedSerializer(secret_key, salt=TOKEN_SALT)
        self.max_age = max_age

    def issue(self, team: Team) -> str:
        return self.serializer.dumps(
            {"id": team.id, "username": team.username, "role": team.role}
        )

    def verify(self, token: str) -> Identity:
        """
        Decode a token issued by this signer.

        @param token: Bearer token string
        @return: Identity carried by the token
        """
        try:
            data = self.serializer.loads(token, max_age=self.max_age)
        except SignatureExpired:
            raise Unauthorized("Token expired")
        except BadSignature:
            raise Unauthorized("Invalid token")

        if not isinstance(data, dict) or data.get("role") not in ROLES or not data.get("id"):
            raise Unauthorized("Invalid token")
        return Identity(team_id=data["id"], role=data["role"])


def _bearer_token(request: web.Request) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def auth_middleware(signer: TokenSigner):
    """
    Build middleware that attaches the caller's Identity to the request.

    Requests without a valid token pass through with no identity, so public
    routes stay reachable with a stale header. A rejected token is kept and
    reported by require_role on protected handlers.

    @param signer: TokenSigner used to verify tokens
    @return: aiohttp middleware
    """

    @web.middleware
    async def middleware(
        request: web.Request,
        handler: Callable[[web.Request], Awaitable[web.StreamResponse]],
    ) -> web.StreamResponse:
        token = _bearer_token(request)
        if token is not None:
            try:
                request[IDENTITY_KEY] = signer.verify(token)
            except Unauthorized as e:
                request[AUTH_ERROR_KEY] = e
        return await handler(request)

    return middleware


def require_role(role: str):
    """
    Restrict a handler to callers authenticated with the given role.

    @param role: "user" or "admin"
    @return: Decorator for aiohttp handler methods
    """

    def decorator(handler: Callable[..., Awaitable[Any]]):
        @functools.wraps(handler)
        async def wrapper(self, request: web.Request) -> Any:
            identity = request.get(IDENTITY_KEY)
            if identity is None:
                raise request.get(AUTH_ERROR_KEY) or Unauthorized("Authentication required")
            if identity.role != role:
                raise Forbidden("Access denied")
            return await handler(self, request)

        return wrapper

    return decorator
