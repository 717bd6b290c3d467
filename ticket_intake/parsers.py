"""
Format normalizers for bulk ticket import.

Each parser turns the raw bytes of one wire format into an ordered list
of flat field mappings. Parsers never raise on bad input: failure is
reported through ParseResult.success / ParseResult.error so the importer
can tell a malformed payload apart from a payload with zero rows.
"""

import csv
import io
import json
import logging
import xml.etree.ElementTree as ET
from typing import Any, Union

from pydantic import BaseModel, Field


logger = logging.getLogger(__name__)


Content = Union[bytes, str]


class NormalizationError(Exception):
    """Raw payload cannot be parsed as its declared format."""
    pass


class UnsupportedFormatError(Exception):
    """Declared content type maps to no known parser."""
    pass


class ParseResult(BaseModel):
    """Outcome of normalizing one payload."""

    success: bool
    records: list[Any] = Field(default_factory=list)
    error: str = ""

    @property
    def count(self) -> int:
        return len(self.records)

    @classmethod
    def ok(cls, records: list[Any]) -> "ParseResult":
        return cls(success=True, records=records)

    @classmethod
    def failed(cls, error: str) -> "ParseResult":
        return cls(success=False, error=error)


def _decode(content: Content) -> str:
    if isinstance(content, bytes):
        return content.decode("utf-8-sig")
    return content.lstrip("\ufeff")


class Parser:
    """Base parser interface."""

    format_name = ""

    def parse(self, content: Content) -> ParseResult:
        """Parse a raw payload into records."""
        raise NotImplementedError


class CSVParser(Parser):
    """
    Parser for CSV ticket files.

    The first non-blank line is the header. Blank lines are skipped and
    every header and value is whitespace-trimmed. A header with no data
    rows is a successful, empty parse.
    """

    format_name = "csv"

    def parse(self, content: Content) -> ParseResult:
        try:
            reader = csv.reader(io.StringIO(_decode(content), newline=""))
            # Only empty or whitespace-only lines are blank; ",,," is a record
            rows = [
                row for row in reader
                if row and not (len(row) == 1 and not row[0].strip())
            ]
        except (csv.Error, UnicodeDecodeError) as e:
            logger.debug(f"CSV parse failure: {e}")
            return ParseResult.failed(str(e))

        if not rows:
            return ParseResult.ok([])

        headers = [h.strip() for h in rows[0]]
        records = []
        for line_no, values in enumerate(rows[1:], start=2):
            if len(values) != len(headers):
                return ParseResult.failed(
                    f"Invalid record length on row {line_no}: "
                    f"expected {len(headers)} columns, got {len(values)}"
                )
            records.append({h: v.strip() for h, v in zip(headers, values)})

        return ParseResult.ok(records)


class JSONParser(Parser):
    """
    Parser for JSON ticket files.

    Accepts a single object (one record) or an array of records.
    """

    format_name = "json"

    def parse(self, content: Content) -> ParseResult:
        try:
            data = json.loads(_decode(content))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.debug(f"JSON parse failure: {e}")
            return ParseResult.failed(str(e))

        if isinstance(data, list):
            return ParseResult.ok(data)
        if isinstance(data, dict):
            return ParseResult.ok([data])
        return ParseResult.failed("JSON payload must be an object or an array of objects")


def _local_name(tag: str) -> str:
    # Drop "{namespace}" prefixes
    return tag.rsplit("}", 1)[-1]


def _element_to_value(element: ET.Element) -> Any:
    """
    Convert an element to plain data.

    Leaf elements become their trimmed text. Other elements become a
    mapping of attributes and children; a child name seen more than once
    maps to a list. Mixed text is kept under "_".
    """
    children = list(element)
    text = (element.text or "").strip()

    if not children and not element.attrib:
        return text

    value: dict[str, Any] = {_local_name(k): v for k, v in element.attrib.items()}
    for child in children:
        name = _local_name(child.tag)
        child_value = _element_to_value(child)
        if name not in value:
            value[name] = child_value
        elif isinstance(value[name], list):
            value[name].append(child_value)
        else:
            value[name] = [value[name], child_value]

    if text:
        value["_"] = text
    return value


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else [value]


class XMLParser(Parser):
    """
    Parser for XML ticket files.

    Records are taken from <ticket> children of the root element, else
    from <item> children, else the root element itself is the single
    record. An empty root element yields no records.
    """

    format_name = "xml"

    RECORD_TAGS = ("ticket", "item")

    def parse(self, content: Content) -> ParseResult:
        try:
            root = ET.fromstring(content)
        except ET.ParseError as e:
            logger.debug(f"XML parse failure: {e}")
            return ParseResult.failed(str(e))

        root_value = _element_to_value(root)

        if not isinstance(root_value, dict):
            # Leaf root: empty document body, or bare text
            return ParseResult.ok([root_value] if root_value else [])

        for tag in self.RECORD_TAGS:
            if tag in root_value:
                return ParseResult.ok(_as_list(root_value[tag]))

        return ParseResult.ok([root_value])


PARSERS: dict[str, Parser] = {
    parser.format_name: parser
    for parser in (CSVParser(), JSONParser(), XMLParser())
}


def detect_format(content_type: str) -> str:
    """
    Map a content type or file name hint to a format name.

    Args:
        content_type: e.g. "text/csv", "application/json; charset=utf-8",
            "tickets.xml" or just "xml".

    Raises:
        UnsupportedFormatError: If the hint names no known format.
    """
    hint = (content_type or "").lower()
    for format_name in PARSERS:
        if format_name in hint:
            return format_name
    raise UnsupportedFormatError(
        f"Unsupported content type '{content_type}'. "
        "Use text/csv, application/json, or application/xml"
    )


def get_parser(content_type: str) -> Parser:
    """Get the parser for a content type hint."""
    return PARSERS[detect_format(content_type)]
