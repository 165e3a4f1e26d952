import re
import yaml
from collections import Counter
from typing import Dict, Iterable, List, Optional, Tuple

from spendsort.models import RuleMatch, TransactionInput
from spendsort.rules.table import DEFAULT_RULES, CategorizationRule
from spendsort.utils.exceptions import RuleTableError
from spendsort.utils.logger import get_logger

log = get_logger("rules")

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    """Lowercase, turn punctuation into spaces, collapse whitespace."""
    text = _NON_ALNUM.sub(" ", (text or "").lower())
    return _WHITESPACE.sub(" ", text).strip()


class RuleEngine:
    """
    Deterministic keyword-based categorization engine.

    Rules are ordered by (priority descending, declaration index ascending).
    The first keyword of the first rule found in the transaction text wins.
    """

    def __init__(self, rules: Optional[Iterable[CategorizationRule]] = None):
        self._declared: Tuple[CategorizationRule, ...] = tuple(rules) if rules is not None else DEFAULT_RULES
        self.rules_cache: List[Tuple[CategorizationRule, Tuple[Tuple[str, str], ...]]] = []
        self._load_rules()

    @classmethod
    def from_yaml(cls, path: str, include_defaults: bool = False) -> "RuleEngine":
        """Build an engine from a YAML rule table, optionally after the built-in rules."""
        rules = list(DEFAULT_RULES) if include_defaults else []
        rules.extend(load_yaml_rules(path))
        return cls(rules)

    def _load_rules(self):
        indexed = list(enumerate(self._declared))
        # Explicit tie-break on declaration index rather than relying on sort stability
        indexed.sort(key=lambda item: (-item[1].priority, item[0]))

        self.rules_cache = []
        for _, rule in indexed:
            keywords = []
            for keyword in rule.keywords:
                normalized = normalize_text(keyword)
                if not normalized:
                    log.warning("Skipping empty keyword", extra={"rule": rule.subcategory_slug, "keyword": keyword})
                    continue
                keywords.append((keyword, normalized))
            self.rules_cache.append((rule, tuple(keywords)))

    def match(self, transaction: TransactionInput) -> Optional[RuleMatch]:
        return self.match_text(transaction.description, transaction.merchant_name)

    def match_text(self, description: str, merchant_name: str) -> Optional[RuleMatch]:
        """
        Match description and merchant name against the rule table.

        Returns the first hit in priority order, None if no keyword matches.
        """
        search_text = normalize_text(f"{description or ''} {merchant_name or ''}")
        if not search_text:
            return None

        for rule, keywords in self.rules_cache:
            for keyword, normalized in keywords:
                if normalized in search_text:
                    return RuleMatch(
                        matched=True,
                        category_slug=rule.category_slug,
                        subcategory_slug=rule.subcategory_slug,
                        confidence=rule.confidence,
                        matched_keyword=keyword,
                        priority=rule.priority,
                    )
        return None

    def get_all_rules(self) -> List[CategorizationRule]:
        """Rules in matching order, for debugging/inspection"""
        return [rule for rule, _ in self.rules_cache]

    def stats(self) -> Dict:
        rules = self.get_all_rules()
        if not rules:
            return {
                "total_rules": 0,
                "total_keywords": 0,
                "categories_count": 0,
                "subcategories_count": 0,
                "average_confidence": 0.0,
                "rules_by_category": {},
            }
        return {
            "total_rules": len(rules),
            "total_keywords": sum(len(r.keywords) for r in rules),
            "categories_count": len({r.category_slug for r in rules}),
            "subcategories_count": len({r.subcategory_slug for r in rules}),
            "average_confidence": sum(r.confidence for r in rules) / len(rules),
            "rules_by_category": dict(Counter(r.category_slug for r in rules)),
        }

    def refresh_rules(self, rules: Optional[Iterable[CategorizationRule]] = None):
        """Replace the rule table (or re-sort the current one)"""
        if rules is not None:
            self._declared = tuple(rules)
        self._load_rules()


def load_yaml_rules(path: str) -> List[CategorizationRule]:
    """Read `rules:` entries from a YAML file into CategorizationRule objects."""
    try:
        with open(path, 'r') as f:
            yaml_data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise RuleTableError(f"Could not load rule table '{path}': {e}") from e

    rules = []
    for i, rule in enumerate(yaml_data.get('rules', [])):
        try:
            rules.append(CategorizationRule(
                keywords=tuple(str(k) for k in rule['keywords']),
                category_slug=rule['category'],
                subcategory_slug=rule.get('subcategory') or rule['category'],
                confidence=float(rule.get('confidence', 0.85)),
                priority=int(rule.get('priority', 1)),
                description=rule.get('description'),
            ))
        except (KeyError, TypeError, ValueError) as e:
            raise RuleTableError(f"Invalid rule #{i} in '{path}': {e}") from e
    return rules


# Global rule engine instance
rule_engine = RuleEngine()
