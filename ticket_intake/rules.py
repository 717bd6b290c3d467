"""
Keyword rule tables for the ticket classifier.

Rules are immutable values built once at startup and passed to the
classifier. The built-in DEFAULT_RULES can be replaced by a YAML rule
table read from a local file or fetched from a URL.

YAML layout:

    categories:
      - category: account_access
        keywords: [login, password]
        priority_boost: {urgent: 5, high: 3, medium: 0, low: 0}
    priorities:
      urgent: [outage, down]
      low: [minor]
"""

import logging
from pathlib import Path
from typing import Any, Optional

import httpx
import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .config import RulesConfig
from .models import Category, Priority


logger = logging.getLogger(__name__)


class RuleSetError(Exception):
    """Error building or loading a rule set."""
    pass


class RuleSetSourceError(RuleSetError):
    """Error when retrieving a rule table from its source."""
    pass


def _clean_keywords(keywords: Any) -> tuple[str, ...]:
    """Lower-case, strip and de-duplicate keywords, keeping order."""
    if isinstance(keywords, str):
        keywords = [keywords]
    cleaned: dict[str, None] = {}
    for keyword in keywords or ():
        keyword = str(keyword).strip().lower()
        if keyword:
            cleaned.setdefault(keyword)
    return tuple(cleaned)


class CategoryRule(BaseModel):
    """Keywords that vote for one category."""

    category: Category
    keywords: tuple[str, ...] = Field(default_factory=tuple)
    priority_boost: dict[Priority, int] = Field(
        ...,
        description="Boost per priority level; must cover every level"
    )

    model_config = {"frozen": True}

    @field_validator("category")
    @classmethod
    def validate_category(cls, v: Category) -> Category:
        if v is Category.OTHER:
            raise ValueError("'other' is the fallback category and cannot have rules")
        return v

    @field_validator("keywords", mode="before")
    @classmethod
    def normalize_keywords(cls, v: Any) -> tuple[str, ...]:
        return _clean_keywords(v)

    @field_validator("priority_boost")
    @classmethod
    def validate_boost_total(cls, v: dict[Priority, int]) -> dict[Priority, int]:
        """Every priority level needs an explicit boost entry."""
        missing = [p.value for p in Priority if p not in v]
        if missing:
            raise ValueError(f"priority_boost missing levels: {', '.join(missing)}")
        return v


class PriorityRule(BaseModel):
    """Trigger keywords for one priority level."""

    priority: Priority
    keywords: tuple[str, ...] = Field(default_factory=tuple)

    model_config = {"frozen": True}

    @field_validator("keywords", mode="before")
    @classmethod
    def normalize_keywords(cls, v: Any) -> tuple[str, ...]:
        return _clean_keywords(v)


class RuleSet(BaseModel):
    """
    Complete classifier configuration.

    Category rules are kept in declaration order; the classifier breaks
    ties in favour of the earlier rule.
    """

    categories: tuple[CategoryRule, ...]
    priorities: tuple[PriorityRule, ...] = Field(default_factory=tuple)

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def validate_unique(self) -> "RuleSet":
        seen_categories = [rule.category for rule in self.categories]
        if len(seen_categories) != len(set(seen_categories)):
            raise ValueError("duplicate category rule")
        seen_priorities = [rule.priority for rule in self.priorities]
        if len(seen_priorities) != len(set(seen_priorities)):
            raise ValueError("duplicate priority rule")
        return self

    def keywords_for(self, priority: Priority) -> tuple[str, ...]:
        """Trigger keywords for a priority level (empty if none configured)."""
        for rule in self.priorities:
            if rule.priority is priority:
                return rule.keywords
        return ()

    def to_dict(self) -> dict[str, Any]:
        """Plain-data form, in the same layout parse_rules() accepts."""
        return {
            "categories": [
                {
                    "category": rule.category.value,
                    "keywords": list(rule.keywords),
                    "priority_boost": {
                        p.value: rule.priority_boost[p] for p in Priority
                    },
                }
                for rule in self.categories
            ],
            "priorities": {
                p.value: list(self.keywords_for(p)) for p in reversed(Priority)
            },
        }


DEFAULT_RULES = RuleSet(
    categories=(
        CategoryRule(
            category=Category.ACCOUNT_ACCESS,
            keywords=(
                "login", "password", "2fa", "two factor", "two-factor", "access",
                "locked", "locked out", "can't login", "cannot login",
                "reset password", "account locked",
            ),
            priority_boost={Priority.URGENT: 5, Priority.HIGH: 3, Priority.MEDIUM: 0, Priority.LOW: 0},
        ),
        CategoryRule(
            category=Category.TECHNICAL_ISSUE,
            keywords=(
                "error", "crash", "bug", "broken", "not working", "doesn't work",
                "fails", "failure", "issue", "problem", "glitch", "malfunction",
            ),
            priority_boost={Priority.URGENT: 3, Priority.HIGH: 2, Priority.MEDIUM: 0, Priority.LOW: 0},
        ),
        CategoryRule(
            category=Category.BILLING_QUESTION,
            keywords=(
                "payment", "invoice", "billing", "refund", "charge", "subscription",
                "pricing", "cost", "credit card", "bill", "discount",
            ),
            priority_boost={Priority.URGENT: 2, Priority.HIGH: 1, Priority.MEDIUM: 0, Priority.LOW: 0},
        ),
        CategoryRule(
            category=Category.FEATURE_REQUEST,
            keywords=(
                "feature", "add", "request", "suggestion", "idea", "enhancement",
                "would like", "would be nice", "could we", "can we",
            ),
            priority_boost={Priority.URGENT: 0, Priority.HIGH: 0, Priority.MEDIUM: 0, Priority.LOW: 2},
        ),
        CategoryRule(
            category=Category.BUG_REPORT,
            keywords=(
                "bug", "defect", "reproduction", "steps to reproduce", "repro",
                "reproducible", "consistently", "happens every time",
            ),
            priority_boost={Priority.URGENT: 4, Priority.HIGH: 2, Priority.MEDIUM: 0, Priority.LOW: 0},
        ),
    ),
    priorities=(
        PriorityRule(
            priority=Priority.URGENT,
            keywords=(
                "can't access", "critical", "production down", "production issue",
                "security", "breach", "outage", "down", "offline", "urgent",
                "emergency",
            ),
        ),
        PriorityRule(
            priority=Priority.HIGH,
            keywords=(
                "important", "blocking", "asap", "as soon as possible", "stuck",
                "cannot proceed", "blocked",
            ),
        ),
        PriorityRule(priority=Priority.MEDIUM, keywords=()),
        PriorityRule(
            priority=Priority.LOW,
            keywords=(
                "minor", "cosmetic", "suggestion", "enhancement", "nice to have",
                "feature request",
            ),
        ),
    ),
)


def _find_section(data: Any, name: str) -> Any:
    """Look a section up under the supported nesting paths."""
    possible_paths = [
        lambda d: d.get("classifier", {}).get("rules", {}).get(name),
        lambda d: d.get("rules", {}).get(name),
        lambda d: d.get(name),
    ]
    for path_fn in possible_paths:
        try:
            result = path_fn(data)
            if result:
                return result
        except (AttributeError, TypeError):
            continue
    return None


def _parse_category_rules(entries: Any) -> list[CategoryRule]:
    rules = []
    if not isinstance(entries, list):
        logger.warning("Category rules must be a list, ignoring section")
        return rules

    for idx, entry in enumerate(entries):
        if not isinstance(entry, dict):
            logger.warning(f"Skipping category rule {idx + 1}: not a mapping")
            continue
        try:
            rules.append(CategoryRule.model_validate(entry))
        except ValidationError as e:
            logger.warning(f"Skipping malformed category rule {idx + 1}: {e.errors()[0]['msg']}")
    return rules


def _parse_priority_rules(entries: Any) -> list[PriorityRule]:
    # Accept both {urgent: [...]} and [{priority: urgent, keywords: [...]}]
    if isinstance(entries, dict):
        entries = [
            {"priority": level, "keywords": keywords}
            for level, keywords in entries.items()
        ]

    rules = []
    if not isinstance(entries, list):
        logger.warning("Priority rules must be a mapping or list, ignoring section")
        return rules

    for idx, entry in enumerate(entries):
        if not isinstance(entry, dict):
            logger.warning(f"Skipping priority rule {idx + 1}: not a mapping")
            continue
        try:
            rules.append(PriorityRule.model_validate(entry))
        except ValidationError as e:
            logger.warning(f"Skipping malformed priority rule {idx + 1}: {e.errors()[0]['msg']}")
    return rules


def parse_rules(content: str) -> RuleSet:
    """
    Parse a YAML rule table into a RuleSet.

    Implements graceful handling of:
    - Empty documents (built-in defaults)
    - Missing sections (built-in defaults for that section)
    - Malformed entries (skipped with warning)

    Args:
        content: Raw YAML text.

    Returns:
        Parsed RuleSet.

    Raises:
        RuleSetError: If the YAML is invalid or the rules conflict.
    """
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        logger.error(f"YAML parsing error in rule table: {e}")
        raise RuleSetError(f"Invalid YAML: {str(e)}") from e

    if not data:
        logger.warning("Empty rule table received, using built-in rules")
        return DEFAULT_RULES

    category_rules = _parse_category_rules(_find_section(data, "categories") or [])
    if not category_rules:
        logger.warning("No usable category rules found, using built-in category rules")
        category_rules = list(DEFAULT_RULES.categories)

    priority_section = _find_section(data, "priorities")
    priority_rules = _parse_priority_rules(priority_section) if priority_section else []
    if not priority_rules:
        logger.warning("No usable priority rules found, using built-in priority rules")
        priority_rules = list(DEFAULT_RULES.priorities)

    try:
        rules = RuleSet(categories=tuple(category_rules), priorities=tuple(priority_rules))
    except ValidationError as e:
        raise RuleSetError(f"Conflicting rules: {e.errors()[0]['msg']}") from e

    total_keywords = sum(len(rule.keywords) for rule in rules.categories)
    logger.info(
        f"Parsed rule table: {len(rules.categories)} categories, "
        f"{total_keywords} category keywords"
    )
    return rules


def load_rules_file(path: Path) -> RuleSet:
    """
    Load a rule table from a local YAML file.

    Raises:
        RuleSetSourceError: If the file cannot be read.
        RuleSetError: If the content is invalid.
    """
    logger.info(f"Loading classifier rules from {path}")
    try:
        content = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        logger.error(f"Cannot read rule file {path}: {e}")
        raise RuleSetSourceError(f"Cannot read rule file: {e}") from e
    return parse_rules(content)


class RuleSetClient:
    """
    Client for retrieving a remote rule table.

    Fetches the YAML-formatted rule table from the configured URL.
    """

    def __init__(self, config: RulesConfig):
        """
        Initialize the rule table client.

        Args:
            config: Rules configuration with the table URL.
        """
        self._config = config
        self._client: Optional[httpx.Client] = None

    def __enter__(self) -> "RuleSetClient":
        """Context manager entry."""
        self._client = httpx.Client(timeout=self._config.request_timeout)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        if self._client:
            self._client.close()
            self._client = None

    def fetch_rules(self) -> RuleSet:
        """
        Fetch and parse the rule table.

        Returns:
            RuleSet built from the remote table.

        Raises:
            RuleSetSourceError: If fetching fails.
            RuleSetError: If the content is invalid.
        """
        if not self._client:
            raise RuntimeError("Client must be used within a context manager")

        logger.info(f"Fetching classifier rules from {self._config.rules_url}")

        try:
            response = self._client.get(self._config.rules_url)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"HTTP error fetching rule table: {e}")
            raise RuleSetSourceError(f"HTTP error: {e.response.status_code}") from e
        except httpx.RequestError as e:
            logger.error(f"Request error fetching rule table: {e}")
            raise RuleSetSourceError(f"Request failed: {str(e)}") from e

        logger.debug(f"Raw rule table length: {len(response.text)}")
        return parse_rules(response.text)


def load_rules(config: Optional[RulesConfig] = None) -> RuleSet:
    """
    Load the rule set named by configuration.

    A rule file wins over a rule URL; with neither configured the
    built-in rules are used.
    """
    if config is None:
        return DEFAULT_RULES

    if config.rules_file:
        return load_rules_file(config.rules_file)

    if config.rules_url:
        with RuleSetClient(config) as client:
            return client.fetch_rules()

    logger.debug("No rule source configured, using built-in rules")
    return DEFAULT_RULES


def dump_rules(rules: RuleSet) -> str:
    """Render a rule set as YAML."""
    return yaml.safe_dump(rules.to_dict(), sort_keys=False, allow_unicode=True)
