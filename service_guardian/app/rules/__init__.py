"""
Route guard rules package.

Turns declarative allow/deny statements into a queryable authorization
function.

Modules of interest:
- models: GuardPolicy, GuardRule, RuleSet and the API models.
- compiler: Path patterns with typed placeholders to anchored matchers.
- builder: Statement expansion, including the verb-complement rules.
- engine: RouteGuardian facade and the decision algorithm.
- loader: Access file (JSON) parsing.

Rule sets are immutable snapshots; the guardian swaps a new snapshot in on
every change, so queries can run concurrently with a reload.
"""

from .models import GuardPolicy, GuardRule, RuleSet, EvaluationResult, MatchTier, HTTP_VERBS, ANONYMOUS_SUBJECT
from .compiler import compile_pattern, PathMatcher
from .builder import expand_rule
from .engine import RouteGuardian, evaluate_rules
from .loader import load_rule_set, parse_access_document

__all__ = [
    "GuardPolicy", "GuardRule", "RuleSet", "EvaluationResult", "MatchTier",
    "HTTP_VERBS", "ANONYMOUS_SUBJECT",
    "compile_pattern", "PathMatcher",
    "expand_rule",
    "RouteGuardian", "evaluate_rules",
    "load_rule_set", "parse_access_document",
]
