"""
Access file loader for the Route Guardian.

An access file looks like::

    {
      "default": "deny",
      "rules": [
        "allow GET|HEAD /admin ADMIN|PROD",
        "deny  *        /admin/part2 *"
      ]
    }

Each statement is ``<policy> <verbs> <path> <subjects>``. Bad statements are
skipped; a missing or unparsable file never changes the current rule set.
"""

from pathlib import Path
from typing import Any, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from shared.errors import RuleSyntaxError
from shared.logging import get_logger

from .builder import expand_rule
from .models import AccessDocument, GuardPolicy, GuardRule, RuleSet, parse_policy


logger = get_logger("guardian.loader")

STATEMENT_TOKENS = 4


def parse_statement(statement: Any) -> Tuple[GuardPolicy, str, str, str]:
    """Split a statement into policy, verbs, path and subjects."""
    if not isinstance(statement, str):
        raise RuleSyntaxError(
            f"Statement must be a string, got {type(statement).__name__}",
            details={"statement": repr(statement)}
        )

    tokens = statement.split()
    if len(tokens) != STATEMENT_TOKENS:
        raise RuleSyntaxError(
            f"Expected {STATEMENT_TOKENS} tokens, got {len(tokens)}",
            details={"statement": statement}
        )

    policy_token, verbs, path, subjects = tokens
    policy = parse_policy(policy_token)
    if policy is None:
        raise RuleSyntaxError(
            f"Unknown policy '{policy_token}'",
            details={"statement": statement}
        )

    return policy, verbs.upper(), path, subjects.upper()


def build_rule_set(document: AccessDocument, base: Optional[RuleSet] = None) -> RuleSet:
    """Build a fresh rule set from a parsed access document.

    Mirrors ``clear()`` + ``default_policy()`` + one ``rule()`` per statement.
    """
    default = GuardPolicy.ALLOW if document.default.strip().lower() == GuardPolicy.ALLOW.value else GuardPolicy.DENY
    rules: List[GuardRule] = []
    skipped = 0

    for statement in document.rules:
        try:
            policy, verbs, path, subjects = parse_statement(statement)
            rules.extend(expand_rule(policy, verbs, path, subjects))
        except RuleSyntaxError as e:
            skipped += 1
            logger.warning("Skipping access rule", statement=statement, error=e.message)

    if skipped:
        logger.warning("Access rules skipped", skipped=skipped, total=len(document.rules))

    rule_set = (base or RuleSet()).cleared().with_default(default)
    return rule_set.extend(rules)


def parse_access_document(content: str, base: Optional[RuleSet] = None) -> Optional[RuleSet]:
    """Parse access document JSON; ``None`` if the document is unusable."""
    try:
        document = AccessDocument.model_validate_json(content)
    except PydanticValidationError as e:
        logger.error("Invalid access document", error=str(e))
        return None

    return build_rule_set(document, base)


def load_rule_set(access_file: str, base: Optional[RuleSet] = None) -> Optional[RuleSet]:
    """Load an access file; ``None`` when it is missing or unreadable."""
    path = Path(access_file)
    if not path.is_file():
        logger.info("Access file not found, keeping current rules", access_file=access_file)
        return None

    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.error("Error reading access file", access_file=access_file, error=str(e))
        return None

    return parse_access_document(content, base)
