"""
Unit tests for the keyword ticket classifier.

Tests cover:
- Category scoring and declaration-order tie-break
- Highest-severity priority selection
- Confidence computation and rounding
- Fallback behavior
- Auto-classification of stored tickets
"""

import pytest

from ticket_intake.classifier import (
    KeywordClassifier,
    ManualOverrideError,
    TicketClassificationService,
)
from ticket_intake.models import Category, Priority, TicketPatch
from ticket_intake.rules import DEFAULT_RULES, CategoryRule, PriorityRule, RuleSet
from ticket_intake.store import InMemoryTicketStore, TicketNotFoundError


NO_BOOST = {Priority.URGENT: 0, Priority.HIGH: 0, Priority.MEDIUM: 0, Priority.LOW: 0}


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def classifier() -> KeywordClassifier:
    """Classifier with the built-in rules."""
    return KeywordClassifier()


@pytest.fixture
def store() -> InMemoryTicketStore:
    return InMemoryTicketStore()


@pytest.fixture
def service(store: InMemoryTicketStore, classifier: KeywordClassifier) -> TicketClassificationService:
    return TicketClassificationService(store, classifier)


def create_ticket(store: InMemoryTicketStore, subject: str, description: str):
    return store.create({
        "customer_id": "CUST-001",
        "customer_email": "user@example.com",
        "customer_name": "Test User",
        "subject": subject,
        "description": description,
    })


# =============================================================================
# Category Tests
# =============================================================================

class TestCategoryScoring:
    """Tests for category selection."""

    def test_account_lockout(self, classifier: KeywordClassifier):
        """Test lockout language classifies as account access."""
        result = classifier.classify(
            "Cannot login to my account",
            "I've been locked out after 3 failed login attempts. Password reset not working.",
        )

        assert result.category == Category.ACCOUNT_ACCESS
        assert result.category_confidence > 0.9
        assert result.reasoning.category_reasoning == "Matched 5 keyword(s) for account_access"
        # No priority trigger appears in this text
        assert result.priority == Priority.MEDIUM

    def test_feature_request(self, classifier: KeywordClassifier):
        """Test feature request with low-priority language."""
        result = classifier.classify(
            "Feature request: dark mode",
            "It would be nice to have a dark mode option",
        )

        assert result.category == Category.FEATURE_REQUEST
        assert result.priority == Priority.LOW
        assert result.category_confidence == 0.6
        assert result.priority_confidence == 0.33
        assert result.overall_confidence == 0.47

    def test_keyword_counts_once(self, classifier: KeywordClassifier):
        """Test repeated keywords count as a single hit."""
        result = classifier.classify("error", "error error error")

        assert result.category == Category.TECHNICAL_ISSUE
        assert result.category_confidence == 0.2
        assert result.keywords_found == ["error"]

    def test_confidence_capped(self, classifier: KeywordClassifier):
        """Test category confidence never exceeds 1.0."""
        result = classifier.classify(
            "Crash",
            "error crash broken glitch malfunction, big problem",
        )

        assert result.category == Category.TECHNICAL_ISSUE
        assert result.category_confidence == 1.0

    def test_substring_matching(self, classifier: KeywordClassifier):
        """Test keywords match inside longer words."""
        result = classifier.classify("Update my address", "")

        # "add" inside "address"
        assert result.category == Category.FEATURE_REQUEST
        assert "add" in result.keywords_found

    def test_case_insensitive(self, classifier: KeywordClassifier):
        """Test matching ignores case."""
        upper = classifier.classify("INVOICE WRONG", "REFUND PLEASE")
        lower = classifier.classify("invoice wrong", "refund please")

        assert upper == lower
        assert upper.category == Category.BILLING_QUESTION


class TestTieBreak:
    """Tests for equal category scores."""

    def test_earlier_category_wins(self, classifier: KeywordClassifier):
        """Test earlier-declared category wins a tie."""
        # One hit each: "login" (account_access), "payment" (billing_question)
        result = classifier.classify("payment", "login")

        assert result.category == Category.ACCOUNT_ACCESS

    def test_tie_follows_declaration_order(self):
        """Test tie-break follows the rule order, not the enum order."""
        rules = RuleSet(
            categories=(
                CategoryRule(category=Category.BILLING_QUESTION, keywords=("payment",), priority_boost=NO_BOOST),
                CategoryRule(category=Category.ACCOUNT_ACCESS, keywords=("login",), priority_boost=NO_BOOST),
            ),
        )
        result = KeywordClassifier(rules).classify("payment", "login")

        assert result.category == Category.BILLING_QUESTION

    def test_later_category_needs_strictly_more(self):
        """Test a later category with more hits replaces an earlier one."""
        rules = RuleSet(
            categories=(
                CategoryRule(category=Category.BILLING_QUESTION, keywords=("payment",), priority_boost=NO_BOOST),
                CategoryRule(category=Category.ACCOUNT_ACCESS, keywords=("login", "password"), priority_boost=NO_BOOST),
            ),
        )
        result = KeywordClassifier(rules).classify("payment", "login password")

        assert result.category == Category.ACCOUNT_ACCESS
        assert result.category_confidence == 0.4


# =============================================================================
# Priority Tests
# =============================================================================

class TestPriority:
    """Tests for priority selection."""

    def test_most_severe_level_wins(self, classifier: KeywordClassifier):
        """Test an urgent hit overrides a low hit."""
        result = classifier.classify("Minor cosmetic glitch", "but now production down")

        assert result.priority == Priority.URGENT
        assert result.priority_confidence == 1.0

    def test_high_priority(self, classifier: KeywordClassifier):
        """Test high-priority trigger."""
        result = classifier.classify("Export", "This is blocking me")

        assert result.priority == Priority.HIGH
        assert result.priority_confidence == 1.0
        assert result.reasoning.priority_reasoning == (
            "Found urgent/important keywords indicating high priority"
        )

    def test_medium_keywords_when_configured(self):
        """Test configured medium keywords give severity 2."""
        rules = RuleSet(
            categories=DEFAULT_RULES.categories,
            priorities=(PriorityRule(priority=Priority.MEDIUM, keywords=("soon",)),),
        )
        result = KeywordClassifier(rules).classify("Reply", "when you can, soon")

        assert result.priority == Priority.MEDIUM
        assert result.priority_confidence == 0.67

    def test_priority_independent_of_category(self, classifier: KeywordClassifier):
        """Test priority is found even when no category matches."""
        result = classifier.classify("Urgent", "please")

        assert result.category == Category.OTHER
        assert result.priority == Priority.URGENT
        assert result.overall_confidence == 0.65


# =============================================================================
# Fallback and Invariant Tests
# =============================================================================

class TestFallback:
    """Tests for inputs with no keyword hits."""

    @pytest.mark.parametrize("subject,description", [
        ("", ""),
        ("Hello there", "What time is it"),
        ("Where is the cafeteria?", ""),
    ])
    def test_no_keywords(self, classifier: KeywordClassifier, subject: str, description: str):
        """Test fallback category, priority and confidences."""
        result = classifier.classify(subject, description)

        assert result.category == Category.OTHER
        assert result.priority == Priority.MEDIUM
        assert result.category_confidence == 0.3
        assert result.priority_confidence == 0.5
        assert result.overall_confidence == 0.4
        assert result.keywords_found == []
        assert result.reasoning.category_reasoning == "No keywords matched, assigned default category"
        assert result.reasoning.priority_reasoning == (
            "No priority indicators found, assigned default medium priority"
        )

    def test_none_text(self, classifier: KeywordClassifier):
        """Test None subject/description are treated as empty."""
        result = classifier.classify(None, None)

        assert result.category == Category.OTHER
        assert result.priority == Priority.MEDIUM


class TestInvariants:
    """Tests for properties that hold for every input."""

    TEXTS = [
        ("Cannot login", "password reset broken, production down"),
        ("Invoice", "refund for the wrong charge on my credit card asap"),
        ("Bug", "steps to reproduce: it happens every time, consistently"),
        ("Hello", "just saying hi"),
        ("Feature", "suggestion: would like an enhancement, minor"),
    ]

    @pytest.mark.parametrize("subject,description", TEXTS)
    def test_deterministic(self, classifier: KeywordClassifier, subject: str, description: str):
        """Test identical input gives identical output."""
        first = classifier.classify(subject, description)
        second = classifier.classify(subject, description)

        assert first == second
        assert first.keywords_found == second.keywords_found

    @pytest.mark.parametrize("subject,description", TEXTS)
    def test_confidence_bounds(self, classifier: KeywordClassifier, subject: str, description: str):
        """Test confidences stay in [0, 1] and overall is their mean."""
        result = classifier.classify(subject, description)

        assert 0.0 <= result.category_confidence <= 1.0
        assert 0.0 <= result.priority_confidence <= 1.0
        mean = (result.category_confidence + result.priority_confidence) / 2
        assert abs(result.overall_confidence - mean) <= 0.01

    def test_keywords_found_deduplicated(self, classifier: KeywordClassifier):
        """Test keywords shared by two categories are listed once."""
        # "bug" is a technical_issue and a bug_report keyword
        result = classifier.classify("Bug", "found a bug, reproducible")

        assert result.keywords_found.count("bug") == 1
        assert result.keywords_found == ["bug", "repro", "reproducible"]


# =============================================================================
# Auto-classification Tests
# =============================================================================

class TestAutoClassify:
    """Tests for classifying stored tickets."""

    def test_not_found(self, service: TicketClassificationService, store: InMemoryTicketStore):
        """Test unknown id raises and leaves the store untouched."""
        with pytest.raises(TicketNotFoundError):
            service.auto_classify("missing-id")

        assert store.count() == 0

    def test_classifies_and_persists(self, service: TicketClassificationService, store: InMemoryTicketStore):
        """Test classification is stored on the ticket."""
        ticket = create_ticket(store, "Refund needed", "I was charged twice for my subscription")

        classification = service.auto_classify(ticket.id)

        assert classification.category == Category.BILLING_QUESTION
        assert classification.manual_override is False
        assert classification.classified_at is not None

        stored = store.get(ticket.id)
        assert stored.category == Category.BILLING_QUESTION
        assert stored.priority == classification.priority
        assert stored.classification == classification
        assert stored.id == ticket.id
        assert stored.created_at == ticket.created_at

    def test_manual_override_respected(self, service: TicketClassificationService, store: InMemoryTicketStore):
        """Test a human classification is not replaced without force."""
        ticket = create_ticket(store, "Refund needed", "I was charged twice for my subscription")
        result = KeywordClassifier().classify("Other", "anything")
        store.update(ticket.id, TicketPatch.from_classification(result, manual_override=True))

        with pytest.raises(ManualOverrideError):
            service.auto_classify(ticket.id)

        stored = store.get(ticket.id)
        assert stored.category == Category.OTHER
        assert stored.classification.manual_override is True

    def test_force_replaces_manual_override(self, service: TicketClassificationService, store: InMemoryTicketStore):
        """Test force re-classifies a manually classified ticket."""
        ticket = create_ticket(store, "Refund needed", "I was charged twice for my subscription")
        result = KeywordClassifier().classify("Other", "anything")
        store.update(ticket.id, TicketPatch.from_classification(result, manual_override=True))

        classification = service.auto_classify(ticket.id, force=True)

        assert classification.category == Category.BILLING_QUESTION
        assert classification.manual_override is False
        assert store.get(ticket.id).category == Category.BILLING_QUESTION
