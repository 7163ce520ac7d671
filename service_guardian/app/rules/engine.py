"""
Route guard decision engine.
"""

import time
from typing import Any, Callable, List, Optional

from shared.logging import get_logger

from .builder import expand_rule
from .compiler import compile_pattern
from .loader import load_rule_set, parse_access_document
from .models import (
    ANONYMOUS_SUBJECT, WILDCARD,
    EvaluationResult, GuardPolicy, GuardRule, MatchTier, RuleSet, split_tokens
)


DenyCallback = Callable[[str, str], Any]


def evaluate_rules(rule_set: RuleSet, verb: Optional[str], path: Optional[str],
                   subjects: Optional[str]) -> EvaluationResult:
    """Decide a query against one rule set snapshot."""
    start_time = time.time()

    def result(granted: bool, reason: str, tier: MatchTier = MatchTier.DEFAULT,
               matched: Optional[List[GuardRule]] = None) -> EvaluationResult:
        return EvaluationResult(
            granted=granted,
            reason=reason,
            tier=tier,
            matched_rules=matched or [],
            evaluation_time_ms=(time.time() - start_time) * 1000
        )

    if not verb:
        return result(False, "Empty verb")

    default_granted = rule_set.default_policy == GuardPolicy.ALLOW
    verb = verb.upper()
    path = (path or "").lower()
    subject_set = set(split_tokens(subjects))

    candidates = [
        rule for rule in rule_set.rules
        if rule.verb == verb and (rule.is_wildcard_subject or rule.subject in subject_set)
    ]
    matching = [rule for rule in candidates if compile_pattern(rule.path).matches(path)]

    if not matching:
        return result(default_granted, "No rule matched, default policy applied")

    individual = [rule for rule in matching if not rule.is_wildcard_subject]
    wildcarded = [rule for rule in matching if rule.is_wildcard_subject]

    # Subject-specific rules outrank wildcard rules; within a tier any allow wins
    if individual:
        granted = any(rule.policy == GuardPolicy.ALLOW for rule in individual)
        return result(granted, "Subject-specific rules matched", MatchTier.INDIVIDUAL, individual)

    if wildcarded:
        granted = any(rule.policy == GuardPolicy.ALLOW for rule in wildcarded)
        return result(granted, "Wildcard rules matched", MatchTier.WILDCARD, wildcarded)

    return result(default_granted, "No rule matched, default policy applied")


class RouteGuardian:
    """Route guard holding the current rule set snapshot.

    The builder methods return ``self`` so statements can be chained::

        guardian = (RouteGuardian()
                    .clear()
                    .default_policy(GuardPolicy.DENY)
                    .allow("*", "/admin", "ADMIN|PROD")
                    .deny("*", "/admin/part2", "*"))

    Every mutation derives a new ``RuleSet`` and publishes it with one
    attribute assignment. Queries read ``self._rule_set`` once, so they always
    evaluate against a complete snapshot even while a reload is running.
    """

    def __init__(self, access_file: Optional[str] = None, rule_set: Optional[RuleSet] = None):
        self.logger = get_logger("guardian.engine")
        self.access_file = access_file
        self._rule_set = rule_set if rule_set is not None else RuleSet()

        if access_file:
            self.load_from_file(access_file)

    @property
    def rule_set(self) -> RuleSet:
        return self._rule_set

    @property
    def policy(self) -> GuardPolicy:
        return self._rule_set.default_policy

    @property
    def rules(self) -> List[GuardRule]:
        return list(self._rule_set.rules)

    def publish(self, rule_set: RuleSet) -> "RouteGuardian":
        """Swap in a fully built rule set."""
        self._rule_set = rule_set
        return self

    def default_policy(self, policy: GuardPolicy) -> "RouteGuardian":
        return self.publish(self._rule_set.with_default(policy))

    def clear(self) -> "RouteGuardian":
        return self.publish(self._rule_set.cleared())

    def rule(self, policy: GuardPolicy, verbs: str, path: str, subjects: str) -> "RouteGuardian":
        """Add one statement, expanded into elementary rules."""
        rules = expand_rule(policy, verbs, path, subjects)
        self.logger.debug(
            "Rule added",
            policy=policy.value,
            verbs=verbs,
            path=path,
            subjects=subjects,
            expanded=len(rules)
        )
        return self.publish(self._rule_set.extend(rules))

    def allow(self, verbs: str, path: str, subjects: str) -> "RouteGuardian":
        return self.rule(GuardPolicy.ALLOW, verbs, path, subjects)

    def deny(self, verbs: str, path: str, subjects: str) -> "RouteGuardian":
        return self.rule(GuardPolicy.DENY, verbs, path, subjects)

    def load_from_file(self, access_file: str) -> "RouteGuardian":
        """Replace the rules with the contents of an access file.

        Missing or unreadable files leave the current snapshot untouched.
        """
        rule_set = load_rule_set(access_file, self._rule_set)
        if rule_set is not None:
            self.publish(rule_set)
            self.logger.info(
                "Access rules loaded",
                access_file=access_file,
                default_policy=rule_set.default_policy.value,
                total_rules=len(rule_set)
            )
        return self

    def load_from_string(self, content: str) -> "RouteGuardian":
        """Replace the rules with an in-memory access document."""
        rule_set = parse_access_document(content, self._rule_set)
        if rule_set is not None:
            self.publish(rule_set)
        return self

    def reload(self) -> bool:
        """Re-read the configured access file; True if a new snapshot was published."""
        if not self.access_file:
            return False
        previous = self._rule_set
        self.load_from_file(self.access_file)
        return self._rule_set is not previous

    def evaluate(self, verb: Optional[str], path: Optional[str],
                 subjects: Optional[str] = ANONYMOUS_SUBJECT) -> EvaluationResult:
        """Decide a query and report which rules decided it."""
        result = evaluate_rules(self._rule_set, verb, path, subjects)
        self.logger.debug(
            "Route guard decision",
            verb=verb,
            path=path,
            subjects=subjects,
            granted=result.granted,
            tier=result.tier.value,
            reason=result.reason
        )
        return result

    def is_granted(self, verb: Optional[str], path: Optional[str],
                   subjects: Optional[str] = ANONYMOUS_SUBJECT) -> bool:
        return self.evaluate(verb, path, subjects).granted

    def authorize(self, method: str, path: str, subjects: Optional[str] = ANONYMOUS_SUBJECT,
                  on_deny: Optional[DenyCallback] = None) -> bool:
        """Same decision as ``is_granted``; calls ``on_deny(path, subjects)`` on denial."""
        if self.is_granted(method, path, subjects):
            return True

        if on_deny is not None:
            on_deny(path, subjects or "")
        return False

    def authorize_request(self, request: Any, subjects: Optional[str] = ANONYMOUS_SUBJECT,
                          on_deny: Optional[DenyCallback] = None) -> bool:
        """Authorize a framework request exposing ``method`` and ``url.path``."""
        return self.authorize(request.method, request.url.path, subjects, on_deny)

    def get_engine_stats(self) -> dict:
        rule_set = self._rule_set
        return {
            "total_rules": len(rule_set),
            "default_policy": rule_set.default_policy.value,
            "individual_rules": len([r for r in rule_set.rules if r.subject != WILDCARD]),
            "wildcard_rules": len([r for r in rule_set.rules if r.subject == WILDCARD]),
            "paths": sorted(set(r.path for r in rule_set.rules))
        }
