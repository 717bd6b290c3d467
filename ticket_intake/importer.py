"""
Bulk ticket import.

Drives parser -> validator -> store -> classifier for every record in a
payload. Rows are processed one at a time in input order; a row that fails
validation is recorded in the summary and the batch carries on. Only a
payload that cannot be parsed at all (or names an unknown format) fails
the whole import.
"""

import logging
from typing import Optional

from .classifier import KeywordClassifier, TicketClassificationService
from .config import DEFAULT_MAX_PAYLOAD_BYTES
from .models import ImportSummary
from .parsers import Content, NormalizationError, get_parser
from .store import TicketStore
from .validators import TicketValidator


logger = logging.getLogger(__name__)


class TicketImporter:
    """Imports ticket files into a ticket store."""

    def __init__(
        self,
        store: TicketStore,
        validator: Optional[TicketValidator] = None,
        classifier: Optional[KeywordClassifier] = None,
        max_payload_bytes: int = DEFAULT_MAX_PAYLOAD_BYTES,
    ):
        """
        Initialize the importer.

        Args:
            store: Destination store for created tickets.
            validator: Record validator (default TicketValidator).
            classifier: Classifier used when auto-classifying.
            max_payload_bytes: Largest payload accepted.
        """
        self._store = store
        self._validator = validator or TicketValidator()
        self._classification = TicketClassificationService(store, classifier)
        self._max_payload_bytes = max_payload_bytes

    def import_tickets(
        self,
        content: Content,
        content_type: str,
        auto_classify: bool = True,
    ) -> ImportSummary:
        """
        Import every record in a payload.

        Args:
            content: Raw file content.
            content_type: Content type or file name hint selecting the parser.
            auto_classify: Classify each created ticket.

        Returns:
            ImportSummary with counts, created tickets and per-row errors.

        Raises:
            UnsupportedFormatError: If content_type names no known format.
            NormalizationError: If the payload cannot be parsed.
        """
        parser = get_parser(content_type)

        size = len(content.encode("utf-8") if isinstance(content, str) else content)
        if size > self._max_payload_bytes:
            logger.error(f"Import payload of {size} bytes exceeds limit")
            raise NormalizationError(
                f"Payload of {size} bytes exceeds the {self._max_payload_bytes} byte limit"
            )

        result = parser.parse(content)
        if not result.success:
            logger.error(f"Failed to parse {parser.format_name} payload: {result.error}")
            raise NormalizationError(f"Failed to parse {parser.format_name} file: {result.error}")

        logger.info(f"Importing {result.count} {parser.format_name} record(s)")

        summary = ImportSummary()
        for row, record in enumerate(result.records, 1):
            outcome = self._validator.validate(record)
            if not outcome.valid:
                logger.warning(f"Row {row} rejected: {'; '.join(outcome.messages)}")
                summary.record_failure(row, record, outcome.messages)
                continue

            ticket = self._store.create(outcome.data)
            if auto_classify:
                ticket = self._classification.classify_and_attach(ticket)
            summary.record_success(ticket)
            logger.debug(f"Row {row} imported as {ticket.id}")

        logger.info(
            f"Import complete: {summary.successful}/{summary.total} succeeded, "
            f"{summary.failed} failed"
        )
        return summary
