"""
Subject resolver interface.
"""

from abc import ABC, abstractmethod
from typing import Iterable, Optional

from fastapi import Request

from ..rules.models import SEPARATOR_PIPE


class SubjectResolver(ABC):
    """Produces the pipe-delimited subjects of the caller.

    ``resolve`` returns ``None`` when the request carries no identity this
    resolver understands; an empty string means an identity without roles.
    """

    name = "subject"

    @abstractmethod
    async def resolve(self, request: Request) -> Optional[str]:
        """Resolve subjects for a request."""


class StaticSubjectResolver(SubjectResolver):
    """Resolver returning fixed subjects, for tests and internal callers."""

    name = "static"

    def __init__(self, subjects: Optional[str]):
        self.subjects = subjects

    async def resolve(self, request: Request) -> Optional[str]:
        return self.subjects


def join_subjects(subjects: Iterable[str]) -> str:
    """Upper-case, de-duplicate and sort subjects into the pipe format."""
    return SEPARATOR_PIPE.join(sorted({s.strip().upper() for s in subjects if s and s.strip()}))
