"""
Data models for the Support Ticket Intake System.

Uses Pydantic for robust data validation and serialization.
Value objects (classification results, rule tables) are frozen so they
can be shared freely between threads.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


class Category(str, Enum):
    """
    Ticket categories.

    Declaration order matters: it is the tie-break order used by the
    keyword classifier. OTHER is the fallback and never scored.
    """
    ACCOUNT_ACCESS = "account_access"
    TECHNICAL_ISSUE = "technical_issue"
    BILLING_QUESTION = "billing_question"
    FEATURE_REQUEST = "feature_request"
    BUG_REPORT = "bug_report"
    OTHER = "other"


class Priority(str, Enum):
    """Priority levels, declared from lowest to highest severity."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def severity(self) -> int:
        """1-based severity rank (LOW == 1, URGENT == 4)."""
        return list(Priority).index(self) + 1


class TicketStatus(str, Enum):
    """Ticket lifecycle status."""
    NEW = "new"
    IN_PROGRESS = "in_progress"
    WAITING_CUSTOMER = "waiting_customer"
    RESOLVED = "resolved"
    CLOSED = "closed"


class TicketSource(str, Enum):
    """Channel a ticket was submitted through."""
    WEB_FORM = "web_form"
    EMAIL = "email"
    API = "api"
    CHAT = "chat"
    PHONE = "phone"


class DeviceType(str, Enum):
    DESKTOP = "desktop"
    MOBILE = "mobile"
    TABLET = "tablet"


class ClassificationReasoning(BaseModel):
    """Human-readable explanation for each classification axis."""

    category_reasoning: str = Field(..., description="Why the category was chosen")
    priority_reasoning: str = Field(..., description="Why the priority was chosen")

    model_config = {"frozen": True}


class ClassificationResult(BaseModel):
    """
    Result of keyword classification for a single ticket.

    Confidences are heuristic match strengths, not probabilities.
    """

    category: Category = Field(..., description="Chosen category")
    priority: Priority = Field(..., description="Chosen priority")
    category_confidence: float = Field(
        ...,
        ge=0.0,
        le=1.0,
        description="Category match strength (0-1, 2 decimal places)"
    )
    priority_confidence: float = Field(
        ...,
        ge=0.0,
        le=1.0,
        description="Priority match strength (0-1, 2 decimal places)"
    )
    overall_confidence: float = Field(
        ...,
        ge=0.0,
        le=1.0,
        description="Mean of category and priority confidence"
    )
    reasoning: ClassificationReasoning
    keywords_found: list[str] = Field(
        default_factory=list,
        description="Distinct keywords matched, in first-seen order"
    )

    model_config = {"frozen": True}


class TicketClassification(ClassificationResult):
    """Classification attached to a stored ticket."""

    classified_at: datetime = Field(default_factory=utcnow)
    manual_override: bool = Field(
        default=False,
        description="True when a human, not the classifier, set category/priority"
    )

    @classmethod
    def from_result(
        cls,
        result: ClassificationResult,
        manual_override: bool = False,
    ) -> "TicketClassification":
        """Stamp a classifier result with the current time."""
        data = result.model_dump(exclude={"classified_at", "manual_override"})
        return cls(**data, manual_override=manual_override)


class TicketMetadata(BaseModel):
    source: TicketSource = TicketSource.API
    browser: Optional[str] = None
    device_type: Optional[DeviceType] = None


class Ticket(BaseModel):
    """
    A stored support ticket.

    Attributes:
        id: Unique identifier (UUID4), assigned on creation
        customer_id: Customer account identifier
        customer_email: Customer contact email
        customer_name: Customer display name
        subject: Short summary of the issue
        description: Full description of the issue
        category: Ticket category (classifier or human assigned)
        priority: Ticket priority (classifier or human assigned)
        status: Lifecycle status
        classification: Last classification attached, if any
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    customer_id: str
    customer_email: str
    customer_name: str
    subject: str
    description: str
    category: Category = Category.OTHER
    priority: Priority = Priority.MEDIUM
    status: TicketStatus = TicketStatus.NEW
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    resolved_at: Optional[datetime] = None
    assigned_to: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    metadata: TicketMetadata = Field(default_factory=TicketMetadata)
    classification: Optional[TicketClassification] = None

    def apply_patch(self, patch: "TicketPatch") -> "Ticket":
        """
        Return a copy of this ticket with the patch's fields applied.

        Only fields explicitly set on the patch are applied. The ticket's
        id and created_at never change; updated_at is refreshed.
        """
        data = self.model_dump()
        data.update(patch.model_dump(exclude_unset=True))
        data["id"] = self.id
        data["created_at"] = self.created_at
        data["updated_at"] = utcnow()
        return Ticket.model_validate(data)

    def is_manually_classified(self) -> bool:
        """Check if a human has overridden the classification."""
        return self.classification is not None and self.classification.manual_override


class TicketPatch(BaseModel):
    """
    Partial update for a ticket.

    Identity and creation fields are not part of the patch, so they are
    dropped if a caller supplies them.
    """

    customer_id: Optional[str] = None
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None
    subject: Optional[str] = None
    description: Optional[str] = None
    category: Optional[Category] = None
    priority: Optional[Priority] = None
    status: Optional[TicketStatus] = None
    resolved_at: Optional[datetime] = None
    assigned_to: Optional[str] = None
    tags: Optional[list[str]] = None
    metadata: Optional[TicketMetadata] = None
    classification: Optional[TicketClassification] = None

    model_config = {"extra": "ignore"}

    @classmethod
    def from_classification(
        cls,
        result: ClassificationResult,
        manual_override: bool = False,
    ) -> "TicketPatch":
        """Build the patch that records a classification on a ticket."""
        return cls(
            category=result.category,
            priority=result.priority,
            classification=TicketClassification.from_result(result, manual_override),
        )


class FieldError(BaseModel):
    """A single field-level validation failure."""

    field: str
    message: str

    model_config = {"frozen": True}


class RowError(BaseModel):
    """Validation failure detail for one imported row."""

    row: int = Field(..., ge=1, description="1-based position in the payload")
    data: Any = Field(..., description="The raw record as normalized")
    errors: list[str] = Field(default_factory=list)


class ImportSummary(BaseModel):
    """
    Outcome of one bulk import.

    total is always successful + failed; errors are in input row order.
    """

    total: int = Field(default=0, ge=0)
    successful: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)
    errors: list[RowError] = Field(default_factory=list)
    tickets: list[Ticket] = Field(default_factory=list)

    def record_success(self, ticket: Ticket) -> None:
        self.total += 1
        self.successful += 1
        self.tickets.append(ticket)

    def record_failure(self, row: int, data: Any, messages: list[str]) -> None:
        self.total += 1
        self.failed += 1
        self.errors.append(RowError(row=row, data=data, errors=messages))

    def to_response(self) -> dict[str, Any]:
        """
        Serialize to the wire shape returned to API callers.

        The errors list is omitted when no row failed.
        """
        response: dict[str, Any] = {
            "summary": {
                "total": self.total,
                "successful": self.successful,
                "failed": self.failed,
            },
            "tickets": [t.model_dump(mode="json") for t in self.tickets],
        }
        if self.errors:
            response["errors"] = [e.model_dump(mode="json") for e in self.errors]
        return response
