"""User-facing summary of an autonomous loop run."""

from collections import OrderedDict

from src.orchestrator.rules.schema import StopTone

HIGH_TOKEN_THRESHOLD = 20000

_NEXT_STEPS: dict[str, tuple[str, str]] = {
    "success": (
        "Deployment request has been processed successfully! ✨",
        "Check the detailed progress updates above to see exactly what "
        "infrastructure changes were made.",
    ),
    "needs_input": (
        "Awaiting your input to continue the deployment process.",
        "Please review the latest message above and provide the requested information.",
    ),
    "error": (
        "Encountered an issue that requires attention.",
        "Review the error details above and try again with corrected parameters.",
    ),
}

_DEFAULT_NEXT_STEPS = (
    "Autonomous execution paused at a natural decision point.",
    "Review the progress above and continue with additional instructions if needed.",
)


def group_tools_by_service(
    tools: list[str],
    service_labels: dict[str, str],
) -> "OrderedDict[str, list[str]]":
    """Group tool names by the service prefix before the first underscore.

    ``atlas_provision_infrastructure`` lands under the atlas label as
    ``provision_infrastructure``. Unknown prefixes get a generic label.
    """
    groups: OrderedDict[str, list[str]] = OrderedDict()
    for tool in tools:
        prefix, sep, rest = tool.partition("_")
        label = service_labels.get(prefix.lower(), f"{prefix.upper()} Service")
        groups.setdefault(label, []).append(rest if sep else tool)
    return groups


def build_execution_summary(
    iterations: int,
    total_tokens: int,
    tools: list[str],
    stopping_reason: str,
    tone: StopTone,
    service_labels: dict[str, str],
) -> str:
    """Render the final loop summary.

    Args:
        iterations: Iterations completed.
        total_tokens: Cumulative tokens used.
        tools: Tool names executed (duplicates are collapsed).
        stopping_reason: Why the loop halted.
        tone: Phrasing selector derived from the matched stop signal.
        service_labels: Tool-prefix to display label map.

    Returns:
        Markdown summary text.
    """
    unique_tools = list(dict.fromkeys(tools))
    success = tone == "success"
    heading = "✅ **Autonomous Execution Complete**" if success else "🔄 **Autonomous Execution Finished**"

    lines = [
        heading,
        "",
        "**Execution Statistics:**",
        f"• **Iterations**: {iterations} autonomous cycles",
        f"• **Token Usage**: {total_tokens:,} tokens",
        f"• **Tools Executed**: {len(unique_tools)} unique tools",
        f"• **Stopping Reason**: {stopping_reason}",
        "",
    ]

    if unique_tools:
        lines.append("**Infrastructure Operations Performed:**")
        for label, names in group_tools_by_service(unique_tools, service_labels).items():
            lines.append(f"• **{label}**: {', '.join(names)}")
        lines.append("")

    status, next_steps = _NEXT_STEPS.get(tone, _DEFAULT_NEXT_STEPS)
    lines.extend([f"**Status**: {status}", "", f"**Next Steps**: {next_steps}"])

    if total_tokens > HIGH_TOKEN_THRESHOLD:
        plural = "s" if iterations != 1 else ""
        lines.extend([
            "",
            f"⚡ **Performance Note**: This was a complex deployment requiring "
            f"{iterations} iteration{plural} and {total_tokens:,} tokens of AI processing.",
        ])

    return "\n".join(lines)
