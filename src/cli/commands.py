"""CLI command implementations — all commands delegate to CommandProcessor."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from src.agent.results import CommandResult
from src.mail.types import CommandContext

if TYPE_CHECKING:
    from src.cli.main import CliSession

logger = logging.getLogger(__name__)
console = Console(width=200)


def _context_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Shared --workspace/--user/--email options, falling back to env vars."""
    func = click.option(
        "--email", "user_email", envvar="USER_GOOGLE_EMAIL", required=True,
        help="Your own address (env: USER_GOOGLE_EMAIL).",
    )(func)
    func = click.option(
        "--user", "user_id", envvar="MAIL_USER_ID", required=True,
        help="User id (env: MAIL_USER_ID).",
    )(func)
    func = click.option(
        "--workspace", "workspace_id", envvar="MAIL_WORKSPACE_ID", required=True,
        help="Workspace id (env: MAIL_WORKSPACE_ID).",
    )(func)
    return func


def _json_option(func: Callable[..., Any]) -> Callable[..., Any]:
    return click.option(
        "--json", "as_json", is_flag=True, help="Print the raw JSON response."
    )(func)


# ── mail-command run ──────────────────────────────────────────────────────────


@click.command()
@click.argument("text")
@_context_options
@_json_option
@click.pass_obj
def run(
    session: CliSession,
    text: str,
    workspace_id: str,
    user_id: str,
    user_email: str,
    as_json: bool,
) -> None:
    """Interpret and execute a natural-language mail command."""
    context = CommandContext(workspace_id, user_id, user_email)
    result = asyncio.run(session.processor.process_command(text, context))
    _render(result, as_json)


# ── mail-command send ─────────────────────────────────────────────────────────


@click.command()
@click.argument("draft_json")
@_context_options
@_json_option
@click.pass_obj
def send(
    session: CliSession,
    draft_json: str,
    workspace_id: str,
    user_id: str,
    user_email: str,
    as_json: bool,
) -> None:
    """Confirm and send a draft previously returned by `run`.

    DRAFT_JSON is either the draft object itself or the whole response
    printed by `run --json`.
    """
    try:
        payload = json.loads(draft_json)
    except json.JSONDecodeError as exc:
        raise click.BadParameter(f"not valid JSON: {exc}", param_hint="DRAFT_JSON") from exc
    draft = payload.get("draft", payload) if isinstance(payload, dict) else payload

    context = CommandContext(workspace_id, user_id, user_email)
    result = asyncio.run(
        session.processor.process_command("", context, {"action": "send", "draft": draft})
    )
    _render(result, as_json)


# ── mail-command connect ──────────────────────────────────────────────────────


@click.command()
@click.argument("token_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--workspace", "workspace_id", envvar="MAIL_WORKSPACE_ID", required=True)
@click.option("--user", "user_id", envvar="MAIL_USER_ID", required=True)
@click.pass_obj
def connect(session: CliSession, token_file: Path, workspace_id: str, user_id: str) -> None:
    """Store an already-authorised Gmail OAuth token file for a user.

    TOKEN_FILE is the authorized-user JSON written by Google's OAuth tools
    (token, refresh_token, client_id, client_secret, scopes, expiry).
    """
    try:
        tokens = json.loads(token_file.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise click.BadParameter(f"cannot read token file: {exc}", param_hint="TOKEN_FILE") from exc
    if not isinstance(tokens, dict) or not (tokens.get("token") or tokens.get("refresh_token")):
        raise click.BadParameter(
            "token file must contain 'token' or 'refresh_token'", param_hint="TOKEN_FILE"
        )

    session.db.save_credentials(workspace_id, user_id, tokens)
    console.print(f"[green]Gmail connected[/green] for user {user_id} in workspace {workspace_id}.")


# ── Rendering ─────────────────────────────────────────────────────────────────


def _render(result: CommandResult, as_json: bool) -> None:
    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2, default=str))
    else:
        _print_result(result)
    if not result.ok:
        raise SystemExit(1)


def _print_result(result: CommandResult) -> None:
    if not result.ok:
        console.print(f"[red]{result.message}[/red]")
        return

    console.print(result.message)

    if result.emails:
        table = Table(box=box.ROUNDED, show_header=True, header_style="bold cyan")
        table.add_column("#", style="dim", width=3)
        table.add_column("Subject", max_width=40)
        table.add_column("From", max_width=30)
        table.add_column("Date", width=12)
        table.add_column("ID", style="dim", width=32)
        for i, email in enumerate(result.emails, start=1):
            sent = email.sent_at or email.created_at
            subject = email.subject if email.is_read else f"[bold]{email.subject}[/bold]"
            table.add_row(
                str(i),
                subject,
                email.sender,
                sent.strftime("%Y-%m-%d"),
                email.id,
            )
        console.print(table)

    if result.draft is not None:
        draft = result.draft
        header = f"To: {', '.join(draft.to) or '(none)'}"
        if draft.cc:
            header += f"\nCc: {', '.join(draft.cc)}"
        console.print(
            Panel(
                f"{header}\nSubject: {draft.subject}\n\n{draft.body}",
                title="[bold]Draft[/bold]",
                border_style="blue",
            )
        )
        console.print(
            "[dim]Run `mail-command send '<draft json>'` to send it "
            "(use --json to get the draft).[/dim]"
        )

    for title, text in (("Summary", result.summary), ("Analysis", result.analysis)):
        if text:
            console.print(Panel(text, title=f"[bold]{title}[/bold]", border_style="blue"))

    if isinstance(result.data, list):
        for item in result.data:
            console.print(f"  • {item}")
    elif isinstance(result.data, str):
        console.print(Panel(result.data, border_style="blue"))
