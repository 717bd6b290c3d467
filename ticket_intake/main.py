"""
Command-line entry point for the Support Ticket Intake System.

Commands:
1. classify        - classify free text without storing anything
2. import          - bulk import a CSV/JSON/XML ticket file
3. auto-classify   - re-classify a stored ticket
4. show-ticket / list-tickets - inspect the ticket store
5. rules / validate-config    - inspect configuration
"""

import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn, Optional

import click

from .classifier import KeywordClassifier, ManualOverrideError, TicketClassificationService
from .config import AppConfig, get_config
from .importer import TicketImporter
from .models import Category, Priority, TicketStatus
from .parsers import NormalizationError, UnsupportedFormatError
from .rules import RuleSetError, dump_rules, load_rules
from .store import JsonFileTicketStore, StoreError, TicketNotFoundError


def setup_logging(level: str) -> None:
    """
    Configure application logging.

    Logs go to stderr so command output on stdout stays machine-readable.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR).
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stderr),
        ],
    )

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


@dataclass
class CliState:
    """Shared state handed to every command."""

    config: AppConfig
    store_dir: Path

    def store(self) -> JsonFileTicketStore:
        return JsonFileTicketStore(self.store_dir)

    def classifier(self) -> KeywordClassifier:
        return KeywordClassifier(load_rules(self.config.rules))


def _fail(message: str) -> NoReturn:
    click.echo(message, err=True)
    sys.exit(1)


def _echo_json(data) -> None:
    click.echo(json.dumps(data, indent=2, ensure_ascii=False))


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug logging",
)
@click.option(
    "--store",
    "store_dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Ticket store directory (default: TICKET_STORE_DIR)",
)
@click.pass_context
def main(ctx: click.Context, debug: bool, store_dir: Optional[Path]) -> None:
    """
    Support Ticket Intake.

    Classifies support tickets by keyword rules and imports ticket
    files into the ticket store.
    """
    config = get_config()
    setup_logging("DEBUG" if debug else config.log_level)
    ctx.obj = CliState(config=config, store_dir=store_dir or config.store.store_dir)


@main.command()
@click.argument("subject")
@click.argument("description", default="")
@click.pass_obj
def classify(state: CliState, subject: str, description: str) -> None:
    """Classify SUBJECT and DESCRIPTION and print the result."""
    try:
        result = state.classifier().classify(subject, description)
    except RuleSetError as e:
        _fail(f"Cannot load classifier rules: {e}")
    _echo_json(result.model_dump(mode="json"))


@main.command(name="import")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--format",
    "file_format",
    type=click.Choice(["csv", "json", "xml"]),
    default=None,
    help="File format (default: from the file extension)",
)
@click.option(
    "--auto-classify/--no-auto-classify",
    default=None,
    help="Classify imported tickets (default: IMPORT_AUTO_CLASSIFY)",
)
@click.pass_obj
def import_file(
    state: CliState,
    file: Path,
    file_format: Optional[str],
    auto_classify: Optional[bool],
) -> None:
    """Import tickets from a CSV, JSON or XML FILE."""
    if auto_classify is None:
        auto_classify = state.config.importer.auto_classify

    try:
        importer = TicketImporter(
            state.store(),
            classifier=state.classifier(),
            max_payload_bytes=state.config.importer.max_payload_bytes,
        )
        summary = importer.import_tickets(
            file.read_bytes(),
            file_format or file.suffix,
            auto_classify=auto_classify,
        )
    except UnsupportedFormatError as e:
        _fail(str(e))
    except (NormalizationError, RuleSetError, StoreError) as e:
        _fail(f"Import failed: {e}")

    _echo_json(summary.to_response())


@main.command(name="auto-classify")
@click.argument("ticket_id")
@click.option(
    "--force",
    is_flag=True,
    default=False,
    help="Replace a manually assigned classification",
)
@click.pass_obj
def auto_classify(state: CliState, ticket_id: str, force: bool) -> None:
    """Re-classify the stored ticket TICKET_ID."""
    try:
        service = TicketClassificationService(state.store(), state.classifier())
        classification = service.auto_classify(ticket_id, force=force)
    except TicketNotFoundError:
        _fail(f"Ticket not found: {ticket_id}")
    except ManualOverrideError as e:
        _fail(str(e))
    except (RuleSetError, StoreError) as e:
        _fail(f"Classification failed: {e}")

    _echo_json(classification.model_dump(mode="json"))


@main.command(name="show-ticket")
@click.argument("ticket_id")
@click.pass_obj
def show_ticket(state: CliState, ticket_id: str) -> None:
    """Print the stored ticket TICKET_ID."""
    try:
        ticket = state.store().get(ticket_id)
    except TicketNotFoundError:
        _fail(f"Ticket not found: {ticket_id}")
    _echo_json(ticket.model_dump(mode="json"))


@main.command(name="list-tickets")
@click.option("--category", type=click.Choice([c.value for c in Category]), default=None)
@click.option("--priority", type=click.Choice([p.value for p in Priority]), default=None)
@click.option("--status", type=click.Choice([s.value for s in TicketStatus]), default=None)
@click.option("--customer-id", default=None)
@click.option("--search", default=None, help="Text to find in subject, description or name")
@click.pass_obj
def list_tickets(
    state: CliState,
    category: Optional[str],
    priority: Optional[str],
    status: Optional[str],
    customer_id: Optional[str],
    search: Optional[str],
) -> None:
    """List stored tickets, optionally filtered."""
    tickets = state.store().find_by_filter(
        category=Category(category) if category else None,
        priority=Priority(priority) if priority else None,
        status=TicketStatus(status) if status else None,
        customer_id=customer_id,
        search=search,
    )
    _echo_json([t.model_dump(mode="json") for t in tickets])


@main.command()
@click.pass_obj
def rules(state: CliState) -> None:
    """Print the active classifier rules as YAML."""
    try:
        click.echo(dump_rules(load_rules(state.config.rules)), nl=False)
    except RuleSetError as e:
        _fail(f"Cannot load classifier rules: {e}")


@main.command(name="validate-config")
@click.pass_obj
def validate_config(state: CliState) -> None:
    """Check configuration and report problems."""
    errors = state.config.validate()
    if errors:
        for error in errors:
            click.echo(f"Configuration error: {error}", err=True)
        sys.exit(1)
    click.echo("Configuration is valid!")


if __name__ == "__main__":
    main()
