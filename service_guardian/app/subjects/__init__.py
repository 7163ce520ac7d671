"""
Subject resolvers.

Each resolver turns one kind of caller identity into the pipe-delimited
subject string the route guard consumes:

- base: SubjectResolver interface and a static resolver.
- jwt_resolver: Role claim of a verified bearer token.
- api_key: Client name from the API key vault.
"""

from .base import SubjectResolver, StaticSubjectResolver, join_subjects
from .jwt_resolver import JwtSubjectResolver
from .api_key import ApiKeySubjectResolver, ApiKeyVault

__all__ = [
    "SubjectResolver", "StaticSubjectResolver", "join_subjects",
    "JwtSubjectResolver",
    "ApiKeySubjectResolver", "ApiKeyVault",
]
