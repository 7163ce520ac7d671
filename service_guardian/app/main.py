"""
Route Guardian decision service.
"""

from pathlib import Path
from typing import List, Optional

from shared.base_service import BaseService
from shared.config import ServiceConfig
from shared.errors import ConfigurationError

from .middleware import RouteGuardianMiddleware
from .rules.engine import RouteGuardian
from .rules.models import (
    DecisionRequest, DecisionResponse, GuardRuleResponse, RuleListResponse
)
from .subjects import ApiKeySubjectResolver, ApiKeyVault, JwtSubjectResolver, SubjectResolver


SERVICE_NAME = "guardian"
SERVICE_PORT = 8020
# Rule listing and reload go through the guard unless guard_management is off
MANAGEMENT_PATHS = ("/guardian/rules", "/guardian/reload")


class GuardianService(BaseService):
    """Route guardian service implementation."""

    def __init__(self, config: Optional[ServiceConfig] = None, guardian: Optional[RouteGuardian] = None):
        super().__init__(SERVICE_NAME, SERVICE_PORT, config)

        self.guardian = guardian or RouteGuardian(self.config.access_file)
        self.resolvers = self._build_resolvers()

        self.app.add_middleware(
            RouteGuardianMiddleware,
            guardian=self.guardian,
            resolvers=self.resolvers,
            guarded_path=self._guarded_paths(),
            metrics=self.metrics
        )

        self._setup_guardian_routes()

    def _guarded_paths(self) -> List[str]:
        guarded = [self.config.guarded_path]
        if self.config.guard_management:
            guarded.extend(MANAGEMENT_PATHS)
        return guarded

    def _build_resolvers(self) -> List[SubjectResolver]:
        resolvers: List[SubjectResolver] = []

        if self.config.jwt_secret:
            resolvers.append(JwtSubjectResolver(
                secret=self.config.jwt_secret,
                algorithm=self.config.jwt_algorithm,
                issuer=self.config.jwt_issuer,
                audience=self.config.jwt_audience,
                role_claim=self.config.jwt_role_claim
            ))

        if Path(self.config.api_keys_file).is_file():
            resolvers.append(ApiKeySubjectResolver(ApiKeyVault.from_file(self.config.api_keys_file)))

        self.logger.info("Subject resolvers configured", resolvers=[r.name for r in resolvers])
        return resolvers

    def _setup_guardian_routes(self):
        """Set up guardian-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": SERVICE_NAME,
                "message": "Route Guardian - Decision Service",
                "version": "1.0.0",
                "guarded_path": self.config.guarded_path,
                "capabilities": ["rule_engine", "jwt_subjects", "api_key_subjects", "hot_reload"]
            }

        @self.app.post("/guardian/check", response_model=DecisionResponse)
        async def check(request: DecisionRequest):
            """Decide whether subjects may call a verb on a path."""
            subjects = request.subjects if request.subjects is not None else self.config.anonymous_subject
            result = self.guardian.evaluate(request.verb, request.path, subjects)
            self.metrics.record_decision(request.verb, result.granted, result.evaluation_time_ms / 1000)

            return DecisionResponse(
                granted=result.granted,
                reason=result.reason,
                tier=result.tier,
                matched_rules=[GuardRuleResponse.from_rule(rule) for rule in result.matched_rules],
                evaluation_time_ms=result.evaluation_time_ms
            )

        @self.app.get("/guardian/rules", response_model=RuleListResponse)
        async def get_rules():
            """Enumerate the current rule set."""
            rule_set = self.guardian.rule_set
            return RuleListResponse(
                default_policy=rule_set.default_policy,
                rules=[GuardRuleResponse.from_rule(rule) for rule in rule_set.rules],
                total=len(rule_set)
            )

        @self.app.post("/guardian/reload")
        async def reload_rules():
            """Reload the access file and publish the new rule set."""
            if not self.guardian.access_file:
                raise ConfigurationError("No access file configured")

            reloaded = self.guardian.reload()
            self.metrics.record_rule_load("ok" if reloaded else "unchanged")

            return {
                "reloaded": reloaded,
                "access_file": self.guardian.access_file,
                **self.guardian.get_engine_stats()
            }

    async def _check_dependencies(self):
        return {"access_file": "ok" if Path(self.config.access_file).is_file() else "missing"}


def create_app():
    """Create route guardian service application."""
    service = GuardianService()
    return service.app


if __name__ == "__main__":
    service = GuardianService()
    service.run()
