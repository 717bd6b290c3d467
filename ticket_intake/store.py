"""
Ticket storage for the Support Ticket Intake System.

Two interchangeable implementations of TicketStore:
- InMemoryTicketStore for tests and embedding
- JsonFileTicketStore (one JSON document per ticket) for the CLI
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import ValidationError

from .models import Category, Priority, Ticket, TicketPatch, TicketStatus


logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Base exception for ticket store errors."""
    pass


class TicketNotFoundError(StoreError):
    """Referenced ticket does not exist."""
    pass


PatchLike = Union[TicketPatch, dict[str, Any]]


class TicketStore(ABC):
    """Interface the core needs from a ticket store."""

    @abstractmethod
    def _save(self, ticket: Ticket) -> None:
        """Persist a ticket, replacing any existing one with the same id."""

    @abstractmethod
    def find_by_id(self, ticket_id: str) -> Optional[Ticket]:
        """Get a ticket by ID, or None."""

    @abstractmethod
    def find_all(self) -> list[Ticket]:
        """List all tickets in creation order."""

    @abstractmethod
    def delete(self, ticket_id: str) -> bool:
        """Delete a ticket by ID. Returns True if deleted."""

    @abstractmethod
    def clear(self) -> None:
        """Remove every ticket."""

    def create(self, data: dict[str, Any]) -> Ticket:
        """
        Create and store a ticket from validated field data.

        Returns:
            The stored ticket with its assigned id and timestamps.
        """
        ticket = Ticket.model_validate(data)
        self._save(ticket)
        logger.debug(f"Created ticket {ticket.id}")
        return ticket

    def get(self, ticket_id: str) -> Ticket:
        """
        Get a ticket by ID.

        Raises:
            TicketNotFoundError: If no ticket has this id.
        """
        ticket = self.find_by_id(ticket_id)
        if ticket is None:
            raise TicketNotFoundError(f"Ticket not found: {ticket_id}")
        return ticket

    def update(self, ticket_id: str, patch: PatchLike) -> Ticket:
        """
        Apply a partial update to a stored ticket.

        The ticket's id and created_at are never changed.

        Raises:
            TicketNotFoundError: If no ticket has this id.
        """
        if not isinstance(patch, TicketPatch):
            patch = TicketPatch.model_validate(patch)
        updated = self.get(ticket_id).apply_patch(patch)
        self._save(updated)
        logger.debug(f"Updated ticket {ticket_id}")
        return updated

    def find_by_filter(
        self,
        category: Optional[Category] = None,
        priority: Optional[Priority] = None,
        status: Optional[TicketStatus] = None,
        customer_id: Optional[str] = None,
        search: Optional[str] = None,
    ) -> list[Ticket]:
        """
        Filter tickets by exact field values and free-text search.

        search matches case-insensitively against subject, description
        and customer name.
        """
        results = self.find_all()

        if category:
            results = [t for t in results if t.category == category]
        if priority:
            results = [t for t in results if t.priority == priority]
        if status:
            results = [t for t in results if t.status == status]
        if customer_id:
            results = [t for t in results if t.customer_id == customer_id]
        if search:
            needle = search.lower()
            results = [
                t for t in results
                if needle in t.subject.lower()
                or needle in t.description.lower()
                or needle in t.customer_name.lower()
            ]

        return results

    def count(self) -> int:
        """Get total number of tickets."""
        return len(self.find_all())


class InMemoryTicketStore(TicketStore):
    """In-memory ticket storage."""

    def __init__(self):
        """Initialize memory store."""
        self._tickets: dict[str, Ticket] = {}

    def _save(self, ticket: Ticket) -> None:
        self._tickets[ticket.id] = ticket

    def find_by_id(self, ticket_id: str) -> Optional[Ticket]:
        return self._tickets.get(ticket_id)

    def find_all(self) -> list[Ticket]:
        return list(self._tickets.values())

    def delete(self, ticket_id: str) -> bool:
        return self._tickets.pop(ticket_id, None) is not None

    def clear(self) -> None:
        self._tickets.clear()

    def count(self) -> int:
        return len(self._tickets)


class JsonFileTicketStore(TicketStore):
    """File-based ticket storage, one JSON file per ticket."""

    def __init__(self, base_dir: Union[str, Path]):
        """
        Initialize file store.

        Args:
            base_dir: Directory holding the ticket files (created if missing).
        """
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _ticket_path(self, ticket_id: str) -> Path:
        # Ticket ids are UUIDs; anything else cannot name a stored file
        if not ticket_id or "/" in ticket_id or "\\" in ticket_id or ticket_id.startswith("."):
            raise TicketNotFoundError(f"Ticket not found: {ticket_id}")
        return self.base_dir / f"{ticket_id}.json"

    def _save(self, ticket: Ticket) -> None:
        path = self._ticket_path(ticket.id)
        try:
            path.write_text(ticket.model_dump_json(indent=2), encoding="utf-8")
        except OSError as e:
            logger.error(f"Cannot write ticket file {path}: {e}")
            raise StoreError(f"Cannot write ticket {ticket.id}: {e}") from e

    def _load(self, path: Path) -> Ticket:
        try:
            return Ticket.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            logger.error(f"Cannot read ticket file {path}: {e}")
            raise StoreError(f"Corrupt ticket file {path.name}: {e}") from e

    def find_by_id(self, ticket_id: str) -> Optional[Ticket]:
        try:
            path = self._ticket_path(ticket_id)
        except TicketNotFoundError:
            return None
        if not path.exists():
            return None
        return self._load(path)

    def find_all(self) -> list[Ticket]:
        tickets = [self._load(path) for path in self.base_dir.glob("*.json")]
        tickets.sort(key=lambda t: t.created_at)
        return tickets

    def delete(self, ticket_id: str) -> bool:
        ticket = self.find_by_id(ticket_id)
        if ticket is None:
            return False
        self._ticket_path(ticket_id).unlink()
        return True

    def clear(self) -> None:
        for path in self.base_dir.glob("*.json"):
            path.unlink()

    def count(self) -> int:
        return len(list(self.base_dir.glob("*.json")))
