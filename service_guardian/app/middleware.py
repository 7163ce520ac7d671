"""
Route guard middleware for FastAPI/Starlette applications.
"""

from typing import Optional, Sequence, Union

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from shared.errors import AuthenticationError, AuthorizationError, GuardianException
from shared.logging import get_logger, set_subject_context
from shared.metrics import MetricsCollector

from .rules.engine import RouteGuardian
from .subjects.base import SubjectResolver


def error_response(exc: GuardianException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_response().model_dump())


class RouteGuardianMiddleware(BaseHTTPMiddleware):
    """Guards every request below ``guarded_path`` (one prefix or several).

    Resolvers are tried in order and the first one that recognises an
    identity supplies the subjects. No identity answers 401, a denied route
    answers 403.
    """

    def __init__(self, app: ASGIApp, guardian: RouteGuardian, resolvers: Sequence[SubjectResolver],
                 guarded_path: Union[str, Sequence[str]] = "", metrics: Optional[MetricsCollector] = None):
        super().__init__(app)
        self.guardian = guardian
        self.resolvers = list(resolvers)
        self.guarded_paths = (guarded_path,) if isinstance(guarded_path, str) else tuple(guarded_path)
        self.metrics = metrics
        self.logger = get_logger("guardian.middleware")

    async def resolve_subjects(self, request: Request) -> Optional[str]:
        for resolver in self.resolvers:
            subjects = await resolver.resolve(request)
            if subjects is not None:
                return subjects
        return None

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if not path.startswith(self.guarded_paths):
            return await call_next(request)

        subjects = await self.resolve_subjects(request)
        if subjects is None:
            self.logger.warning("Forbidden - not authenticated", method=request.method, path=path)
            return error_response(AuthenticationError(
                "Authentication failed (not authenticated)",
                details={"method": request.method, "path": path}
            ))

        set_subject_context(subjects)
        result = self.guardian.evaluate(request.method, path, subjects)
        if self.metrics is not None:
            self.metrics.record_decision(request.method, result.granted, result.evaluation_time_ms / 1000)

        if not result.granted:
            self.logger.warning(
                "Unauthorized - access denied",
                method=request.method,
                path=path,
                subjects=subjects or "missing"
            )
            return error_response(AuthorizationError(
                "Access denied",
                details={"method": request.method, "path": path, "subjects": subjects}
            ))

        request.state.subjects = subjects
        return await call_next(request)
