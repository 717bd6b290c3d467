"""
Keyword-based ticket classifier for the Support Ticket Intake System.

Assigns a category and priority to a ticket by counting which configured
keywords occur in its subject and description. Matching is plain substring
presence on lower-cased text: a keyword found several times counts once,
and partial-word hits ("login" inside "logins") are intentional.

Scoring is a pure function of the text and the injected RuleSet, so a
single classifier can be shared between threads without locking. The only
side effect in this module is TicketClassificationService persisting a
result to the ticket store.
"""

import logging
from typing import Optional

from .models import (
    Category,
    ClassificationReasoning,
    ClassificationResult,
    Priority,
    Ticket,
    TicketClassification,
    TicketPatch,
)
from .rules import DEFAULT_RULES, RuleSet
from .store import TicketNotFoundError, TicketStore


logger = logging.getLogger(__name__)


class ManualOverrideError(Exception):
    """Ticket classification was set by a human and re-classification was not forced."""
    pass


class KeywordClassifier:
    """
    Deterministic keyword classifier.

    Category: the rule with the most distinct keyword hits wins; a later
    rule needs a strictly greater count to displace an earlier one. No hits
    means the fallback category.

    Priority: the most severe level with at least one keyword hit wins,
    independently of the category. No hits means the fallback priority.
    """

    FALLBACK_CATEGORY = Category.OTHER
    FALLBACK_PRIORITY = Priority.MEDIUM

    # Confidence normalisation knobs
    CATEGORY_CONFIDENCE_DIVISOR = 5
    PRIORITY_CONFIDENCE_DIVISOR = 3
    FALLBACK_CATEGORY_CONFIDENCE = 0.3
    FALLBACK_PRIORITY_CONFIDENCE = 0.5

    def __init__(self, rules: RuleSet = DEFAULT_RULES):
        """
        Initialize the classifier.

        Args:
            rules: Keyword rule tables to score against.
        """
        self._rules = rules
        logger.debug(f"Initialized classifier with {len(rules.categories)} category rules")

    @property
    def rules(self) -> RuleSet:
        return self._rules

    def classify(
        self,
        subject: Optional[str],
        description: Optional[str],
    ) -> ClassificationResult:
        """
        Classify ticket text.

        Never raises: text with no keyword hits gets the fallback
        category and priority.

        Args:
            subject: Ticket subject (None treated as empty).
            description: Ticket description (None treated as empty).

        Returns:
            ClassificationResult for the text.
        """
        text = f"{subject or ''} {description or ''}".lower()

        # Ordered set of every keyword hit, category scan first
        keywords_found: dict[str, None] = {}

        category = self.FALLBACK_CATEGORY
        max_score = 0
        for rule in self._rules.categories:
            matched = [keyword for keyword in rule.keywords if keyword in text]
            for keyword in matched:
                keywords_found.setdefault(keyword)
            if len(matched) > max_score:
                max_score = len(matched)
                category = rule.category

        severity = 0
        for level in Priority:
            matched = [keyword for keyword in self._rules.keywords_for(level) if keyword in text]
            for keyword in matched:
                keywords_found.setdefault(keyword)
            if matched:
                severity = max(severity, level.severity)

        priority = list(Priority)[severity - 1] if severity > 0 else self.FALLBACK_PRIORITY

        if max_score > 0:
            category_confidence = min(max_score / self.CATEGORY_CONFIDENCE_DIVISOR, 1.0)
            category_reasoning = f"Matched {max_score} keyword(s) for {category.value}"
        else:
            category_confidence = self.FALLBACK_CATEGORY_CONFIDENCE
            category_reasoning = "No keywords matched, assigned default category"

        if severity > 0:
            priority_confidence = min(severity / self.PRIORITY_CONFIDENCE_DIVISOR, 1.0)
            priority_reasoning = (
                f"Found urgent/important keywords indicating {priority.value} priority"
            )
        else:
            priority_confidence = self.FALLBACK_PRIORITY_CONFIDENCE
            priority_reasoning = "No priority indicators found, assigned default medium priority"

        overall_confidence = (category_confidence + priority_confidence) / 2

        return ClassificationResult(
            category=category,
            priority=priority,
            category_confidence=round(category_confidence, 2),
            priority_confidence=round(priority_confidence, 2),
            overall_confidence=round(overall_confidence, 2),
            reasoning=ClassificationReasoning(
                category_reasoning=category_reasoning,
                priority_reasoning=priority_reasoning,
            ),
            keywords_found=list(keywords_found),
        )

    def classify_ticket(self, ticket: Ticket) -> ClassificationResult:
        """Classify a stored ticket by its subject and description."""
        result = self.classify(ticket.subject, ticket.description)
        logger.debug(
            f"Classified {ticket.id}: {result.category.value} / "
            f"{result.priority.value} (confidence: {result.overall_confidence:.2f})"
        )
        return result


class TicketClassificationService:
    """
    Runs the classifier against stored tickets and persists the result.

    A ticket's classification is either absent, system-assigned
    (manual_override False), or human-assigned (manual_override True).
    Human-assigned classifications are only replaced when forced.
    """

    def __init__(self, store: TicketStore, classifier: Optional[KeywordClassifier] = None):
        self._store = store
        self._classifier = classifier or KeywordClassifier()

    def classify_and_attach(self, ticket: Ticket) -> Ticket:
        """
        Classify a ticket and persist the classification onto it.

        Returns:
            The updated ticket as stored.
        """
        result = self._classifier.classify_ticket(ticket)
        return self._store.update(ticket.id, TicketPatch.from_classification(result))

    def auto_classify(self, ticket_id: str, force: bool = False) -> TicketClassification:
        """
        Re-classify a stored ticket.

        Args:
            ticket_id: Identifier of the ticket.
            force: Replace a human-assigned classification.

        Returns:
            The classification now attached to the ticket.

        Raises:
            TicketNotFoundError: If no ticket has this id (store untouched).
            ManualOverrideError: If the ticket was classified by a human
                and force is False (store untouched).
        """
        ticket = self._store.find_by_id(ticket_id)
        if ticket is None:
            logger.warning(f"Cannot classify {ticket_id}: ticket not found")
            raise TicketNotFoundError(f"Ticket not found: {ticket_id}")

        if ticket.is_manually_classified() and not force:
            logger.warning(f"Ticket {ticket_id} has a manual classification, not overwriting")
            raise ManualOverrideError(
                f"Ticket {ticket_id} was classified manually; use force to re-classify"
            )

        updated = self.classify_and_attach(ticket)
        logger.info(
            f"Auto-classified {ticket_id} as {updated.category.value} / {updated.priority.value}"
        )
        return updated.classification
