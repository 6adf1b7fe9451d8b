"""
CLI interface for daylog.

Usage:
    daylog add -f pushups reps=20
    daylog update a4k reps=25
    daylog get a4k
    daylog del pushups:2026
"""

import json
import os
from datetime import date, datetime, time
from pathlib import Path
from typing import Any, Optional, Union

import typer
from typing_extensions import Annotated

from .api import Journal
from .combine import ABSENT, UPDATE_STRATEGIES
from .errors import AmbiguousError, DaylogError, DocExistsError
from .logging_config import configure_quiet_mode, enable_debug_mode
from .output import Output, Show
from .types import CREATE_TIME, HUMAN_ID, OCCUR_TIME, Document, is_datum, short_summary


# Configure quiet mode by default
# Set DAYLOG_VERBOSE=1 to enable debug mode via environment
if os.environ.get("DAYLOG_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _version_callback(value: bool):
    if value:
        from importlib.metadata import version
        print(f"daylog {version('daylog')}")
        raise typer.Exit()


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_json_output = False
_store_override: Optional[Path] = None
_show_override: Optional[Show] = None


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _get_json_output() -> bool:
    return _json_output


def _store_callback(value: Optional[Path]):
    global _store_override
    _store_override = value


def _show_callback(value: Optional[Show]):
    global _show_override
    _show_override = value


app = typer.Typer(
    name="daylog",
    help="Log events and data to a revisioned document store.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    output_json: Annotated[bool, typer.Option(
        "--json", "-j",
        help="Output documents as JSON",
        callback=_json_callback,
        is_eager=True,
    )] = False,
    show: Annotated[Optional[Show], typer.Option(
        "--show",
        help="How much to report: none, minimal, standard, verbose",
        callback=_show_callback,
        is_eager=True,
    )] = None,
    version: Annotated[Optional[bool], typer.Option(
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    )] = None,
    store: Annotated[Optional[Path], typer.Option(
        "--store", "-s",
        envvar="DAYLOG_STORE_PATH",
        help="Path to the store directory",
        callback=_store_callback,
        is_eager=True,
    )] = None,
):
    """Log events and data to a revisioned document store."""


# -----------------------------------------------------------------------------
# Common Options
# -----------------------------------------------------------------------------

StoreOption = Annotated[
    Optional[Path],
    typer.Option(
        "--store", "-s",
        envvar="DAYLOG_STORE_PATH",
        help="Path to the store directory (default: ~/.daylog/)"
    )
]

DateOption = Annotated[
    Optional[str],
    typer.Option("--date", "-d", help="Date it happened (YYYY-MM-DD)")
]

TimeOption = Annotated[
    Optional[str],
    typer.Option("--time", "-t", help="Time it happened (HH:MM, or full ISO datetime)")
]


def _get_journal(store: Optional[Path]) -> Journal:
    """Open the store, handling errors gracefully."""
    import atexit

    actual_store = store if store is not None else _store_override
    try:
        journal = Journal(actual_store)
    except (OSError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    atexit.register(journal.close)
    show = _show_override if _show_override is not None else journal.config.show
    journal.output = Output(show, as_json=_get_json_output())
    return journal


def _infer_value(text: str) -> Any:
    """Interpret a command-line value: JSON literals where they parse, else text."""
    try:
        return json.loads(text)
    except ValueError:
        return text


def _parse_data(items: Optional[list[str]]) -> dict[str, Any]:
    """Parse key=value arguments to a dict."""
    if not items:
        return {}
    parsed: dict[str, Any] = {}
    for item in items:
        if "=" not in item:
            typer.echo(f"Error: Invalid data '{item}'. Use key=value", err=True)
            raise typer.Exit(1)
        k, v = item.split("=", 1)
        if not k:
            typer.echo(f"Error: Missing key in '{item}'", err=True)
            raise typer.Exit(1)
        parsed[k] = _infer_value(v)
    return parsed


def _parse_occur_time(date_str: Optional[str], time_str: Optional[str]) -> Union[date, datetime, None]:
    """
    Turn --date / --time into a date or local datetime.

    Only a date: the record is date-only. A time without a date: today.
    A full ISO datetime in --time wins over --date.
    """
    if date_str is None and time_str is None:
        return None
    try:
        day = date.fromisoformat(date_str) if date_str else None
        if time_str is None:
            return day
        try:
            when = datetime.fromisoformat(time_str)
        except ValueError:
            when = datetime.combine(day or date.today(), time.fromisoformat(time_str))
    except ValueError as e:
        typer.echo(f"Error: Invalid date/time: {e}", err=True)
        raise typer.Exit(1)
    return when.astimezone() if when.tzinfo is None else when


def _check_strategy(strategy: Optional[str]) -> None:
    if strategy is not None and strategy not in UPDATE_STRATEGIES:
        choices = ", ".join(sorted(UPDATE_STRATEGIES))
        typer.echo(f"Error: Unknown strategy '{strategy}'. Choose from: {choices}", err=True)
        raise typer.Exit(1)


def _format_doc(doc: Document) -> str:
    """One line per document: id, humanId, time, content."""
    if _get_json_output():
        return json.dumps(doc, indent=2, ensure_ascii=False)
    meta = doc.get("meta", {}) if is_datum(doc) else {}
    when = meta.get(OCCUR_TIME) or meta.get(CREATE_TIME) or ""
    parts = [doc["_id"], meta.get(HUMAN_ID, ""), when[:19], short_summary(doc, width=80)]
    return "  ".join(p for p in parts if p)


def _fail(e: DaylogError) -> None:
    typer.echo(f"Error: {e}", err=True)
    if isinstance(e, DocExistsError):
        typer.echo(f"Existing: {_format_doc(e.existing)}", err=True)
    elif isinstance(e, AmbiguousError):
        typer.echo("Type more characters to pick one of the candidates.", err=True)
    raise typer.Exit(1)


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

@app.command()
def add(
    data: Annotated[Optional[list[str]], typer.Argument(help="Data as key=value")] = None,
    field: Annotated[Optional[str], typer.Option(
        "--field", "-f",
        help="What is being logged (becomes part of the id)"
    )] = None,
    date_str: DateOption = None,
    time_str: TimeOption = None,
    id: Annotated[Optional[str], typer.Option(
        "--id",
        help="Use this id instead of deriving one"
    )] = None,
    id_structure: Annotated[Optional[str], typer.Option(
        "--id-structure",
        help="Id template, e.g. '%field%:%occurTime%'"
    )] = None,
    conflict: Annotated[Optional[str], typer.Option(
        "--conflict", "-c",
        help="Merge strategy to use if the record already exists"
    )] = None,
    store: StoreOption = None,
):
    """
    Record data, timed now unless --date/--time say otherwise.

    \b
    Examples:
        daylog add -f pushups reps=20
        daylog add -f weight kg=71.3 -d 2026-03-01
        daylog add -f mood level=4 -c update     # merge if already logged
    """
    _check_strategy(conflict)
    payload = _parse_data(data)
    if field is not None:
        payload["field"] = field
    occur = _parse_occur_time(date_str, time_str)
    journal = _get_journal(store)
    try:
        doc = journal.add(
            payload,
            occur_time=occur if occur is not None else datetime.now().astimezone(),
            id=id,
            id_structure=id_structure,
            conflict_strategy=conflict,
        )
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    except DaylogError as e:
        _fail(e)
    typer.echo(_format_doc(doc))


@app.command()
def update(
    quick_id: Annotated[str, typer.Argument(help="Start of the id or humanId")],
    data: Annotated[Optional[list[str]], typer.Argument(help="Data as key=value")] = None,
    field: Annotated[Optional[str], typer.Option(
        "--field", "-f",
        help="Change what is logged (renames the record)"
    )] = None,
    strategy: Annotated[Optional[str], typer.Option(
        "--strategy", "-u",
        help="Merge strategy (default from config)"
    )] = None,
    remove_keys: Annotated[Optional[list[str]], typer.Option(
        "--remove-key", "-x",
        help="Remove this key (repeatable)"
    )] = None,
    date_str: DateOption = None,
    time_str: TimeOption = None,
    store: StoreOption = None,
):
    """
    Merge data into an existing record.

    If the change alters the id (new field or time), the record is renamed.

    \b
    Examples:
        daylog update a4k reps=25
        daylog update a4k tags='["am"]' -u append
        daylog update a4k -x note
        daylog update a4k -f situps     # renames pushups:... to situps:...
    """
    _check_strategy(strategy)
    payload = _parse_data(data)
    if field is not None:
        payload["field"] = field
    for key in remove_keys or []:
        payload[key] = ABSENT
    occur = _parse_occur_time(date_str, time_str)
    journal = _get_journal(store)
    try:
        doc = journal.update(quick_id, payload, strategy=strategy, occur_time=occur)
    except DaylogError as e:
        _fail(e)
    typer.echo(_format_doc(doc))


@app.command()
def get(
    quick_id: Annotated[list[str], typer.Argument(help="Start of the id or humanId")],
    store: StoreOption = None,
):
    """
    Show record(s) by quick id.

    A quick id is any prefix of a record's id or humanId that picks out
    exactly one record.
    """
    journal = _get_journal(store)
    had_errors = False
    for one in quick_id:
        try:
            doc = journal.get(one)
        except DaylogError as e:
            typer.echo(f"Error: {e}", err=True)
            had_errors = True
            continue
        typer.echo(_format_doc(doc))
    if had_errors:
        raise typer.Exit(1)


@app.command("del")
def del_cmd(
    quick_id: Annotated[list[str], typer.Argument(help="Start of the id or humanId")],
    store: StoreOption = None,
):
    """Delete record(s) by quick id."""
    journal = _get_journal(store)
    had_errors = False
    for one in quick_id:
        try:
            doc = journal.delete(one)
        except DaylogError as e:
            typer.echo(f"Error: {e}", err=True)
            had_errors = True
            continue
        typer.echo(f"Deleted {doc['_id']}")
    if had_errors:
        raise typer.Exit(1)


@app.command("list")
def list_recent(
    limit: Annotated[int, typer.Option(
        "--limit", "-n",
        help="Maximum records to show"
    )] = 10,
    store: StoreOption = None,
):
    """List the most recently written records."""
    journal = _get_journal(store)
    for doc in journal.list_recent(limit=limit):
        typer.echo(_format_doc(doc))


@app.command()
def config(
    store: StoreOption = None,
):
    """Show the store location and configuration."""
    journal = _get_journal(store)
    cfg = journal.config
    if _get_json_output():
        typer.echo(json.dumps({
            "store": str(journal.store_path),
            "config": str(cfg.config_path),
            "default_strategy": cfg.default_strategy,
            "human_id_length": cfg.human_id_length,
            "show": cfg.show.value,
            "documents": journal.count(),
        }, indent=2))
        return
    typer.echo(f"store: {journal.store_path}")
    typer.echo(f"config: {cfg.config_path}")
    typer.echo(f"default_strategy: {cfg.default_strategy}")
    typer.echo(f"human_id_length: {cfg.human_id_length}")
    typer.echo(f"show: {cfg.show.value}")
    typer.echo(f"documents: {journal.count()}")


# -----------------------------------------------------------------------------

def main():
    try:
        app()
    except SystemExit:
        raise  # Let typer handle exit codes
    except KeyboardInterrupt:
        raise SystemExit(130)  # Standard exit code for Ctrl+C
    except Exception as e:
        # Log full traceback to file, show clean message to user
        from .errors import log_exception
        log_path = log_exception(e, context="daylog CLI")
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
