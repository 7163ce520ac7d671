"""
Rule data models for the Route Guardian.
"""

from typing import Any, Optional, List, Tuple, Iterable
from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, Field


SEPARATOR_PIPE = "|"
WILDCARD = "*"
ANONYMOUS_SUBJECT = "ANONYMOUS"
HTTP_VERBS: Tuple[str, ...] = ("GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "CONNECT")


class GuardPolicy(str, Enum):
    """Rule and default policies."""
    ALLOW = "allow"
    DENY = "deny"

    def invert(self) -> "GuardPolicy":
        return GuardPolicy.DENY if self is GuardPolicy.ALLOW else GuardPolicy.ALLOW


class MatchTier(str, Enum):
    """Which group of rules produced a decision."""
    INDIVIDUAL = "individual"
    WILDCARD = "wildcard"
    DEFAULT = "default"


@dataclass(frozen=True)
class GuardRule:
    """One elementary fact: a single verb, path pattern and subject.

    Verb and subject are upper-cased and the path pattern lower-cased when
    the rule is created, so every rule in a rule set is already normalized.
    """
    policy: GuardPolicy
    verb: str
    path: str
    subject: str

    def __post_init__(self):
        object.__setattr__(self, "verb", self.verb.upper())
        object.__setattr__(self, "path", self.path.lower())
        object.__setattr__(self, "subject", self.subject.upper())

    @property
    def is_wildcard_subject(self) -> bool:
        return self.subject == WILDCARD

    def describe(self) -> str:
        return f"{self.policy.value} {self.verb} {self.path} {self.subject}"


@dataclass(frozen=True)
class RuleSet:
    """Immutable snapshot of all rules plus the default policy.

    Builders never mutate a snapshot; they derive a new one, which is then
    published by a single reference assignment.
    """
    rules: Tuple[GuardRule, ...] = ()
    default_policy: GuardPolicy = GuardPolicy.DENY

    def extend(self, rules: Iterable[GuardRule]) -> "RuleSet":
        return RuleSet(rules=self.rules + tuple(rules), default_policy=self.default_policy)

    def with_default(self, policy: GuardPolicy) -> "RuleSet":
        return RuleSet(rules=self.rules, default_policy=policy)

    def cleared(self) -> "RuleSet":
        return RuleSet(rules=(), default_policy=self.default_policy)

    def __len__(self) -> int:
        return len(self.rules)


@dataclass
class EvaluationResult:
    """Result of a route guard decision."""
    granted: bool
    reason: str
    tier: MatchTier = MatchTier.DEFAULT
    matched_rules: List[GuardRule] = field(default_factory=list)
    evaluation_time_ms: float = 0.0


class AccessDocument(BaseModel):
    """Declarative rule source, usually ``access.json``."""
    default: str = Field("deny", description="Default policy: allow or deny")
    # Entries are checked one by one so a bad statement only drops itself
    rules: List[Any] = Field(default_factory=list, description="Statements: <policy> <verbs> <path> <subjects>")


class DecisionRequest(BaseModel):
    """Request model for a decision query."""
    verb: str = Field(..., description="HTTP method")
    path: str = Field(..., description="Request path")
    subjects: Optional[str] = Field(None, description="Pipe-delimited subjects; omitted means the anonymous subject")


class GuardRuleResponse(BaseModel):
    """Serialized guard rule."""
    policy: GuardPolicy
    verb: str
    path: str
    subject: str

    @classmethod
    def from_rule(cls, rule: GuardRule) -> "GuardRuleResponse":
        return cls(policy=rule.policy, verb=rule.verb, path=rule.path, subject=rule.subject)


class DecisionResponse(BaseModel):
    """Response model for a decision query."""
    granted: bool = Field(..., description="Whether access is granted")
    reason: str = Field(..., description="Reason for the decision")
    tier: MatchTier = Field(MatchTier.DEFAULT, description="Rule group that decided")
    matched_rules: List[GuardRuleResponse] = Field(default_factory=list)
    evaluation_time_ms: float = 0.0


class RuleListResponse(BaseModel):
    """Response model for rule enumeration."""
    default_policy: GuardPolicy
    rules: List[GuardRuleResponse]
    total: int


def parse_policy(token: str) -> Optional[GuardPolicy]:
    """Map ``allow``/``deny`` (any case) to a policy, ``None`` otherwise."""
    try:
        return GuardPolicy(token.strip().lower())
    except ValueError:
        return None


def split_tokens(value: Optional[str]) -> List[str]:
    """Split a pipe-delimited list, upper-casing and dropping blanks."""
    if not value:
        return []
    return [token.strip().upper() for token in value.split(SEPARATOR_PIPE) if token.strip()]

