"""Interactive conversational REPL for the orchestration coordinator.

Runs the coordinator in-process against the HTTP backend and renders
each assistant response with Rich. Background notices (plan steps,
recovery progress) are printed as they arrive.
"""

import asyncio

from rich.console import Console

from src.cli.output import render_response
from src.orchestrator.events import EventType
from src.services.conversation_coordinator import OrchestrationCoordinator

console = Console()

# Events printed between prompts; everything else stays in the event history
_NOTICE_EVENTS = {
    EventType.RECOVERY_PROGRESS.value,
    EventType.RECOVERY_SUCCESS.value,
    EventType.RECOVERY_ESCALATED.value,
    EventType.EXECUTION_STEP_COMPLETED.value,
    EventType.EXECUTION_STEP_FAILED.value,
    EventType.EXECUTION_COMPLETED.value,
}


async def _print_notices(coordinator: OrchestrationCoordinator, conversation_id: str) -> None:
    async for event in coordinator.notifications.create_event_stream(conversation_id):
        if event["type"] not in _NOTICE_EVENTS:
            continue
        message = event["data"].get("message")
        if message:
            console.print(f"\n[dim]{event['type']}:[/dim] {message}")
        else:
            console.print(f"\n[dim]{event['type']}[/dim]")


async def run_repl(
    coordinator: OrchestrationCoordinator,
    workspace_id: str,
    user_id: str,
    credential: str | None = None,
) -> None:
    """Run the interactive conversational REPL.

    Args:
        coordinator: Coordinator wired to the HTTP backend.
        workspace_id: Workspace for the new conversation.
        user_id: User for the new conversation.
        credential: Backend credential forwarded on every turn.
    """
    conversation = coordinator.create_conversation(workspace_id, user_id)
    console.print(f"[dim]Conversation: {conversation.id}[/dim]")
    console.print()
    console.print("[bold]Infraflow[/bold] interactive mode")
    console.print("Describe what you want to build. Ctrl+D to exit.")
    console.print()

    notices = asyncio.create_task(_print_notices(coordinator, conversation.id))
    try:
        while True:
            try:
                user_input = await asyncio.to_thread(console.input, "[bold green]> [/bold green]")
            except EOFError:
                break

            if not user_input.strip():
                continue

            try:
                with console.status("Working..."):
                    response = await coordinator.process_message(
                        conversation.id, user_input, credential
                    )
            except KeyboardInterrupt:
                console.print("\n[yellow]Interrupted[/yellow]")
                continue
            render_response(response)
    finally:
        notices.cancel()
        await asyncio.gather(notices, return_exceptions=True)

    console.print("\n[dim]Session ended.[/dim]")
