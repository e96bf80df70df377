"""CLI output formatters for Rich tables and panels.

Provides human-readable Rich output (default) and machine-parseable
JSON output (--json flag) for rule tables and assistant responses.
"""

import json

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from src.orchestrator.models.response import AssistantResponse
from src.orchestrator.rules.schema import RuleSet

console = Console()

# Loop outcome color map
OUTCOME_COLORS = {
    "continue": "green",
    "stop": "red",
}

RESPONSE_STYLES = {
    "text": "cyan",
    "error": "red",
    "recovery_started": "yellow",
}


def _matcher(rule) -> str:
    if rule.phrases:
        return "phrases: " + ", ".join(rule.phrases)
    if rule.patterns:
        return "patterns: " + ", ".join(rule.patterns)
    if rule.max_words is not None:
        return f"fewer than {rule.max_words} words"
    if rule.iteration_bands:
        return "iterations: " + ", ".join(
            f"{b.min}-{b.max if b.max is not None else '∞'} → {b.outcome}"
            for b in rule.iteration_bands
        )
    return "(default)"


def format_signal_table(rules: RuleSet, as_json: bool = False) -> Table | str:
    """Format the loop continue/stop table in evaluation order.

    Args:
        rules: Active rule tables.
        as_json: If True, return a JSON string instead of a Rich table.

    Returns:
        Rich table or JSON string.
    """
    if as_json:
        return json.dumps(
            [r.model_dump(exclude_defaults=True) for r in rules.loop.signal_table],
            indent=2,
        )

    table = Table(title="Loop Signal Table", show_lines=True)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Rule", style="cyan", no_wrap=True)
    table.add_column("Outcome")
    table.add_column("Tone")
    table.add_column("Matches")
    for index, rule in enumerate(rules.loop.signal_table, start=1):
        color = OUTCOME_COLORS.get(rule.outcome, "white")
        table.add_row(
            str(index),
            rule.name,
            f"[{color}]{rule.outcome}[/{color}]",
            rule.tone,
            _matcher(rule),
        )
    return table


def format_lexicons(rules: RuleSet) -> Table:
    """Format the approval and intent lexicons as one table."""
    table = Table(title="Lexicons", show_lines=True)
    table.add_column("Lexicon", style="cyan", no_wrap=True)
    table.add_column("Terms")
    rows = [
        ("approval.reject", rules.approval.reject),
        ("approval.modify", rules.approval.modify),
        ("approval.approve", rules.approval.approve),
        ("intent.execute_commands", rules.intent.execute_commands),
        ("intent.deployment_keywords", rules.intent.deployment_keywords),
        ("intent.deployment_patterns", rules.intent.deployment_patterns),
        ("recovery.error_keywords", rules.provisioning_failure.error_keywords),
        ("recovery.input_keywords", rules.provisioning_failure.input_keywords),
    ]
    for name, terms in rows:
        table.add_row(name, ", ".join(terms) or "—")
    for rule in rules.backend_errors:
        table.add_row(f"backend_errors.{rule.category}", ", ".join(rule.phrases))
    return table


def render_response(response: AssistantResponse) -> None:
    """Print an assistant response with its suggested actions."""
    style = RESPONSE_STYLES.get(response.response_type, "cyan")
    subtitle = None
    if response.usage and response.usage.total_tokens:
        subtitle = f"{response.usage.total_tokens:,} tokens"
    console.print(Panel(Markdown(response.message), border_style=style, subtitle=subtitle))
    for action in response.suggested_actions or []:
        target = action.action_data.get("url") or action.action_data.get("section") or ""
        console.print(f"  [bold]→[/bold] {action.text} [dim]{target}[/dim]")
    if response.recovery_id:
        console.print(f"  [dim]Recovery: {response.recovery_id}[/dim]")
