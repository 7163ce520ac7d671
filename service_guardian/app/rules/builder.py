"""
Rule builder for the Route Guardian.

Expands one allow/deny statement (verb list, path, subject list) into the
elementary rules stored in a rule set.
"""

from typing import List, Optional

from shared.errors import RuleSyntaxError

from .models import GuardPolicy, GuardRule, HTTP_VERBS, WILDCARD, split_tokens


def expand_verbs(verbs: Optional[str]) -> List[str]:
    """Resolve a verb list to the declared verbs, in fixed-set order for ``*``."""
    declared = split_tokens(verbs)
    if not declared or WILDCARD in declared:
        return list(HTTP_VERBS)

    unknown = [verb for verb in declared if verb not in HTTP_VERBS]
    if unknown:
        raise RuleSyntaxError(
            f"Unknown HTTP verb(s): {', '.join(unknown)}",
            details={"verbs": verbs, "allowed": list(HTTP_VERBS)}
        )

    # Drop duplicates, keep declaration order
    return list(dict.fromkeys(declared))


def expand_subjects(subjects: Optional[str]) -> List[str]:
    """Resolve a subject list; an empty list means every subject."""
    declared = split_tokens(subjects)
    if not declared:
        return [WILDCARD]
    return list(dict.fromkeys(declared))


def expand_rule(policy: GuardPolicy, verbs: Optional[str], path: str, subjects: Optional[str]) -> List[GuardRule]:
    """Expand a statement into per-verb, per-subject rules.

    Declared verbs get ``policy``; every other verb of the fixed set gets the
    inverted policy for the same path and subjects. An ``allow GET /x ADMIN``
    therefore also denies POST, PUT, ... on ``/x`` for ADMIN.
    """
    if not path:
        raise RuleSyntaxError("Guard rule requires a path pattern", details={"verbs": verbs, "subjects": subjects})

    positive = expand_verbs(verbs)
    negative = [verb for verb in HTTP_VERBS if verb not in positive]
    inverted = policy.invert()

    rules: List[GuardRule] = []
    for subject in expand_subjects(subjects):
        for verb in positive:
            rules.append(GuardRule(policy=policy, verb=verb, path=path, subject=subject))
        for verb in negative:
            rules.append(GuardRule(policy=inverted, verb=verb, path=path, subject=subject))

    return rules
