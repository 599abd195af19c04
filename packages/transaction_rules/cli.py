# ruff: noqa: I001
"""CLI for the ``transaction_rules`` package.

Typer-based console interface over the public API. Environment variables are
loaded from a local ``.env`` with ``python-dotenv`` (without overriding values
already set) before commands run; see :mod:`transaction_rules.config` for the
variables read.

Commands
--------
- ``check-rule RULE``: compile a rule and print its target category.
- ``evaluate RULE --transaction JSON``: print ``true`` or ``false``.
- ``reapply``: re-categorize a JSON data file or the SQL store.
- ``add-rule RULE``: validate a rule and append it to the SQL store.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated, Any

import typer
from dotenv import load_dotenv
from pydantic import ValidationError
from typer.models import ArgumentInfo

from .api import check_rule, evaluate, reapply_all, reapply_rules
from .config import Settings
from .dsl import RuleCompileError
from .logging_setup import configure_logging
from .models import MalformedRuleError, Rule, Transaction


def _fail(message: str) -> typer.Exit:
    typer.echo(f"Error: {message}", err=True)
    return typer.Exit(1)


def _load_data_file(path: Path) -> tuple[dict[str, Any], list[Transaction], list[Rule]]:
    """Read ``{"transactions": [...], "rules": [...]}`` from ``path``."""

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise _fail(f"File not found: {path}") from None
    except PermissionError:
        raise _fail(f"Permission denied: {path}") from None
    except json.JSONDecodeError as e:
        raise _fail(f"Failed to parse JSON in {path}: {e}") from None
    if not isinstance(raw, dict):
        raise _fail(f"{path}: expected a JSON object with 'transactions' and 'rules'")

    try:
        transactions = [Transaction.model_validate(t) for t in raw.get("transactions", [])]
        rules = [Rule.model_validate(r) for r in raw.get("rules", [])]
    except ValidationError as e:
        raise _fail(f"{path}: invalid record: {e}") from None
    return raw, transactions, rules


def _write_data_file(
    path: Path, raw: dict[str, Any], transactions: list[Transaction], rules: list[Rule]
) -> None:
    out = {
        **raw,
        "transactions": [t.model_dump(mode="json") for t in transactions],
        "rules": [r.model_dump(mode="json", by_alias=True) for r in rules],
    }
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(out, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
    tmp.replace(path)


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help="Re-categorize transactions with user-authored rules.",
)

# Module-level argument object to satisfy ruff B008 (no calls in defaults).
RULE_ARGUMENT: ArgumentInfo = typer.Argument(
    ...,
    help='Rule definition, e.g. \'transaction.merchant === "Walmart" -> "Shopping"\'.',
)


@app.command("check-rule")
def check_rule_cmd(rule: Annotated[str, RULE_ARGUMENT]) -> None:
    """Compile RULE and print the category it assigns."""

    try:
        category = check_rule(rule)
    except MalformedRuleError as e:
        raise _fail(f"malformed rule: {e}") from None
    except RuleCompileError as e:
        raise _fail(f"invalid condition: {e}") from None
    typer.echo(category)


@app.command("evaluate")
def evaluate_cmd(
    rule: Annotated[str, RULE_ARGUMENT],
    *,
    transaction: str = typer.Option(..., help="Transaction as a JSON object."),
) -> None:
    """Evaluate RULE against one transaction and print true/false."""

    try:
        tx = Transaction.model_validate_json(transaction)
    except ValidationError as e:
        raise _fail(f"invalid transaction: {e}") from None
    settings = Settings.from_env()
    matched = evaluate(tx, Rule(rule_definition=rule), budget_seconds=settings.eval_budget_seconds)
    typer.echo("true" if matched else "false")


@app.command("reapply")
def reapply_cmd(
    *,
    data: Path | None = typer.Option(
        None, help="JSON file with 'transactions' and 'rules' arrays.", dir_okay=False
    ),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (used when --data is not given)."
    ),
    write: bool = typer.Option(False, help="Write the re-categorized data file back."),
    workers: int | None = typer.Option(
        None, help="Worker threads (defaults to RULES_MAX_WORKERS or 1)."
    ),
) -> None:
    """Re-apply every rule to every transaction (first match wins)."""

    settings = Settings.from_env()
    max_workers = workers if workers is not None else settings.max_workers

    if data is not None:
        raw, transactions, rules = _load_data_file(data)
        result = reapply_all(
            transactions,
            rules,
            budget_seconds=settings.eval_budget_seconds,
            max_workers=max_workers,
        )
        if write:
            try:
                _write_data_file(data, raw, transactions, rules)
            except OSError as e:
                raise _fail(f"failed to write {data}: {e}") from None
        typer.echo(result.message)
        return

    url = database_url or settings.database_url
    if not url:
        raise _fail("pass --data or set DATABASE_URL / --database-url")

    from db.client import session_scope

    from .persistence import SqlStore

    try:
        with session_scope(database_url=url) as session:
            result = reapply_rules(
                SqlStore(session),
                budget_seconds=settings.eval_budget_seconds,
                max_workers=max_workers,
            )
    except Exception as e:
        raise _fail(f"reapply against the database failed: {e}") from None
    typer.echo(result.message)


@app.command("add-rule")
def add_rule_cmd(
    rule: Annotated[str, RULE_ARGUMENT],
    *,
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Validate RULE and append it to the SQL store."""

    try:
        check_rule(rule)
    except MalformedRuleError as e:
        raise _fail(f"malformed rule: {e}") from None
    except RuleCompileError as e:
        raise _fail(f"invalid condition: {e}") from None

    url = database_url or Settings.from_env().database_url
    if not url:
        raise _fail("DATABASE_URL is not set; pass --database-url")

    from db.client import session_scope

    from .persistence import SqlStore

    stored = Rule(rule_definition=rule)
    try:
        with session_scope(database_url=url) as session:
            SqlStore(session).append_rule(stored)
    except Exception as e:
        raise _fail(f"failed to store rule: {e}") from None
    typer.echo(stored.id)


@app.callback()
def _root(
    log_level: str | None = typer.Option(
        None,
        "--log-level",
        help="Log level name or number (default: $TRANSACTION_RULES_LOG_LEVEL or INFO).",
    ),
) -> None:
    """Load ``.env`` from the current directory and configure logging."""

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging(log_level)


def main() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover - exercised via console script
    main()
