"""
Bearer-token identity.

Tokens are HS256 JWTs carrying ``sub`` (user id) and ``role``; issuing them
for real users (phone / Google login) happens elsewhere, ``issue`` exists for
tooling and tests.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import ExpiredSignatureError, PyJWTError

from src.config import settings
from src.domain.entities import Caller
from src.domain.enums import UserType
from src.domain.errors import AuthenticationError

bearer_scheme = HTTPBearer(auto_error=False)


class TokenAuthority:
    def __init__(
        self,
        secret: str = settings.jwt_secret,
        algorithm: str = settings.jwt_algorithm,
        ttl_days: int = settings.token_ttl_days,
    ):
        self.secret = secret
        self.algorithm = algorithm
        self.ttl = timedelta(days=ttl_days)

    def issue(self, user_id: int, role: UserType, expires_delta: Optional[timedelta] = None) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(user_id),
            "role": UserType(role).value,
            "iat": now,
            "exp": now + (expires_delta or self.ttl),
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def resolve(self, token: Optional[str]) -> Caller:
        if not token:
            raise AuthenticationError("Token manquant", "Missing token")
        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except ExpiredSignatureError as exc:
            raise AuthenticationError("Token expiré", "Token expired") from exc
        except PyJWTError as exc:
            raise AuthenticationError() from exc

        try:
            return Caller(user_id=int(payload["sub"]), role=UserType(payload["role"]))
        except (KeyError, ValueError) as exc:
            raise AuthenticationError() from exc


async def get_caller(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Caller:
    token = credentials.credentials if credentials else None
    return request.app.state.tokens.resolve(token)
