"""
JWT bearer token subject resolver.
"""

from typing import Any, Awaitable, Callable, Dict, List, Optional

from fastapi import Request
from jose import JWTError, jwt

from shared.errors import AuthenticationError
from shared.logging import get_logger

from ..rules.models import SEPARATOR_PIPE
from .base import SubjectResolver, join_subjects


AUTH_HEADER = "Authorization"
BEARER_PREFIX = "Bearer "
CLAIM_USER_ID = "sub"
CLAIM_USERNAME = "name"
# Role marker asking for additional roles from a role lookup
DB_LOOKUP_ROLE = "DB^"

RoleLookup = Callable[[str], Awaitable[str]]


class JwtSubjectResolver(SubjectResolver):
    """Subjects from the role claim of a verified bearer token."""

    name = "jwt"

    def __init__(self, secret: str, algorithm: str = "HS256", issuer: Optional[str] = None,
                 audience: Optional[str] = None, role_claim: str = "rol",
                 role_lookup: Optional[RoleLookup] = None):
        if not secret:
            raise AuthenticationError("JWT secret is not configured")
        self.secret = secret
        self.algorithm = algorithm
        self.issuer = issuer
        self.audience = audience
        self.role_claim = role_claim
        self.role_lookup = role_lookup
        self.logger = get_logger("guardian.jwt_resolver")

    def decode_token(self, token: str) -> Dict[str, Any]:
        """Verify a token and return its claims."""
        if token.startswith(BEARER_PREFIX):
            token = token[len(BEARER_PREFIX):]

        options: Dict[str, Any] = {"verify_aud": self.audience is not None}
        try:
            return jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                audience=self.audience,
                issuer=self.issuer,
                options=options,
            )
        except JWTError as exc:
            raise AuthenticationError("JWT validation failed", details={"error": str(exc)}) from exc

    def roles_from_claims(self, claims: Dict[str, Any]) -> List[str]:
        raw = claims.get(self.role_claim)
        if raw is None:
            return []
        if isinstance(raw, str):
            return [role.strip() for role in raw.split(SEPARATOR_PIPE) if role.strip()]
        if isinstance(raw, (list, tuple)):
            return [str(role) for role in raw if role is not None]

        self.logger.warning("Ignoring role claim of unexpected type", claim=self.role_claim, type=type(raw).__name__)
        return []

    async def resolve(self, request: Request) -> Optional[str]:
        auth_header = request.headers.get(AUTH_HEADER)
        if not auth_header or not auth_header.startswith(BEARER_PREFIX):
            return None

        try:
            claims = self.decode_token(auth_header)
        except AuthenticationError as e:
            self.logger.warning("JWT authentication failed", error=e.message, details=e.details)
            return None

        roles = self.roles_from_claims(claims)

        if DB_LOOKUP_ROLE in roles and self.role_lookup is not None:
            user_id = claims.get(CLAIM_USER_ID, "")
            try:
                looked_up = await self.role_lookup(user_id)
                roles.extend(looked_up.split(SEPARATOR_PIPE) if looked_up else [])
            except Exception as e:
                # A failing lookup must not block the pipeline
                self.logger.error("Role lookup failed, continuing", user_id=user_id, error=str(e))

        subjects = join_subjects(role for role in roles if role != DB_LOOKUP_ROLE)
        self.logger.debug(
            "Request authenticated with JWT",
            user_id=claims.get(CLAIM_USER_ID),
            username=claims.get(CLAIM_USERNAME),
            subjects=subjects
        )
        return subjects
