"""Error recovery engine for failed provisioning operations.

``start_recovery`` registers a session and returns its ID at once; the
work runs as a background task:

1. Analyze the failure with the chat backend (diagnosis, proposed fix,
   corrected parameters).
2. Re-invoke the operation through the provisioning backend.
3. On failure, back off, re-analyze with the new error, and retry.
4. After the attempt ceiling, escalate with manual remediation guidance.

A session emits exactly one terminal event: ``recovery_success`` or
``recovery_escalated`` (a cancelled session emits neither).
"""

import asyncio
import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from src.config import RecoveryConfig
from src.orchestrator.events import ConversationEventEmitter, EventType
from src.orchestrator.models.backend import ChatMessage, ProvisioningResult
from src.orchestrator.models.recovery import RecoverySession, RecoveryStatus
from src.services.backend_gateway import ChatBackend, ProvisioningBackend
from src.utils.redaction import redact_text

logger = logging.getLogger(__name__)

TOTAL_PHASES = 3

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)

_PROVIDER_CONTEXT = """DIGITALOCEAN API COMMON ERRORS AND SOLUTIONS:
1. Authentication (401): invalid or missing API token, or missing scopes.
2. Rate limiting (429): too many requests; back off and retry.
3. Resource limits (422): droplet or volume limit reached; check account limits.
4. Invalid parameters (400): bad region, size slug, or image slug.
5. Insufficient resources (422): size not available in region; try another size or region.
6. DNS issues: domain not configured or propagation pending.
7. SSH key issues: invalid key format or key already exists.

Regions: nyc1, nyc3, ams3, sfo3, sgp1, lon1, fra1, tor1, blr1, syd1
Droplet sizes: s-1vcpu-1gb, s-1vcpu-2gb, s-2vcpu-2gb, s-2vcpu-4gb, s-4vcpu-8gb
Images: ubuntu-22-04-x64, ubuntu-20-04-x64, debian-11-x64"""

ESCALATION_SUGGESTIONS = [
    "Check account limits with your cloud provider",
    "Verify API token permissions",
    "Try a different region or size",
    "Contact provider support",
]

SleepFn = Callable[[float], Awaitable[None]]


def _analysis_prompt(session: RecoverySession) -> str:
    return f"""You are an infrastructure expert. Analyze this provisioning error and provide:
1. Root cause diagnosis
2. A specific fix to try
3. Corrected parameters if needed

ERROR DETAILS:
Operation: {session.operation}
Provider: {session.provider}
Parameters: {json.dumps(session.parameters, sort_keys=True, default=str)}
Error: {session.last_error}

CONTEXT:
{_PROVIDER_CONTEXT}

Respond in JSON format:
{{"diagnosis": "...", "proposedFix": "...", "modifiedParameters": {{}}}}"""


def parse_analysis(text: str) -> dict[str, Any]:
    """Parse the backend's analysis reply.

    Args:
        text: Raw reply text, ideally containing a JSON object.

    Returns:
        Dict with diagnosis, proposedFix and modifiedParameters. Falls back
        to treating the whole reply as the diagnosis.
    """
    match = _JSON_OBJECT.search(text or "")
    if match:
        try:
            parsed = json.loads(match.group(0))
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, dict) and parsed.get("diagnosis"):
            modified = parsed.get("modifiedParameters")
            return {
                "diagnosis": str(parsed["diagnosis"]),
                "proposedFix": str(parsed.get("proposedFix") or "Retry with corrected parameters"),
                "modifiedParameters": modified if isinstance(modified, dict) else {},
            }
    return {
        "diagnosis": (text or "").strip() or "No diagnosis available",
        "proposedFix": "Retry with corrected parameters",
        "modifiedParameters": {},
    }


class ErrorRecoveryEngine:
    """Runs bounded retry sessions for provisioning failures.

    Attributes:
        _sessions: Every session started in this process, by ID.
        _tasks: Background tasks for sessions still running.
    """

    def __init__(
        self,
        chat_backend: ChatBackend,
        provisioning_backend: ProvisioningBackend,
        emitter: ConversationEventEmitter,
        settings: RecoveryConfig,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._chat = chat_backend
        self._provisioning = provisioning_backend
        self._emitter = emitter
        self._settings = settings
        self._sleep = sleep
        self._sessions: dict[str, RecoverySession] = {}
        self._tasks: dict[str, asyncio.Task] = {}

    async def start_recovery(
        self,
        conversation_id: str,
        error: BaseException | str,
        provider: str,
        operation: str,
        parameters: dict[str, Any],
        credential: str | None = None,
    ) -> str:
        """Create a recovery session and start it in the background.

        Args:
            conversation_id: Conversation the failure happened in.
            error: The original failure.
            provider: Cloud provider to retry against.
            operation: Operation to re-invoke.
            parameters: Original operation parameters.
            credential: Credential for the retry calls. Held by the task only.

        Returns:
            The new session's ID.
        """
        session = RecoverySession(
            conversation_id=conversation_id,
            provider=provider,
            operation=operation,
            parameters=dict(parameters),
            max_attempts=self._settings.max_attempts,
            last_error=redact_text(str(error)),
        )
        self._sessions[session.id] = session
        logger.info(
            "Starting recovery %s for %s/%s in conversation %s",
            session.id,
            provider,
            operation,
            conversation_id,
        )
        await self._emitter.emit(
            EventType.RECOVERY_STARTED,
            conversation_id,
            {
                "recovery_id": session.id,
                "provider": provider,
                "operation": operation,
                "status": session.status.value,
            },
        )
        task = asyncio.create_task(self._run(session, credential))
        self._tasks[session.id] = task
        task.add_done_callback(lambda _t, sid=session.id: self._tasks.pop(sid, None))
        return session.id

    def get_recovery_status(self, recovery_id: str) -> RecoverySession | None:
        """Return a session by ID, or None."""
        return self._sessions.get(recovery_id)

    def list_recoveries(self, conversation_id: str | None = None) -> list[RecoverySession]:
        """List sessions, optionally for one conversation."""
        sessions = list(self._sessions.values())
        if conversation_id is not None:
            sessions = [s for s in sessions if s.conversation_id == conversation_id]
        return sessions

    def cancel_recovery(self, recovery_id: str) -> bool:
        """Cancel a running session.

        Returns:
            True if the session was active and is now cancelled.
        """
        session = self._sessions.get(recovery_id)
        if session is None or session.is_terminal:
            return False
        session.status = RecoveryStatus.CANCELLED
        session.ended_at = datetime.now(timezone.utc)
        task = self._tasks.get(recovery_id)
        if task is not None:
            task.cancel()
        logger.info("Recovery %s cancelled", recovery_id)
        return True

    async def wait(self, recovery_id: str) -> RecoverySession | None:
        """Wait for a session's background task to finish."""
        task = self._tasks.get(recovery_id)
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass
        return self._sessions.get(recovery_id)

    async def shutdown(self) -> None:
        """Cancel every running session. Called on application shutdown."""
        for recovery_id in list(self._tasks):
            self.cancel_recovery(recovery_id)
        if self._tasks:
            await asyncio.gather(*self._tasks.values(), return_exceptions=True)

    # ------------------------------------------------------------------
    # Background workflow
    # ------------------------------------------------------------------

    async def _progress(self, session: RecoverySession, status: str, message: str,
                        phase: int, **extra: Any) -> None:
        await self._emitter.emit(
            EventType.RECOVERY_PROGRESS,
            session.conversation_id,
            {
                "recovery_id": session.id,
                "status": status,
                "message": message,
                "step": phase,
                "total_steps": TOTAL_PHASES,
                **extra,
            },
        )

    async def _run(self, session: RecoverySession, credential: str | None) -> None:
        try:
            await self._analyze(session, credential)
            while session.attempt < session.max_attempts:
                if session.is_terminal:
                    return
                session.attempt += 1
                result = await self._attempt(session, credential)
                if result.success:
                    await self._succeed(session, result)
                    return
                if session.attempt < session.max_attempts:
                    await self._sleep(self._settings.backoff_seconds * session.attempt)
                    await self._analyze(session, credential)
            await self._escalate(session)
        except asyncio.CancelledError:
            logger.info("Recovery %s task cancelled", session.id)
            raise
        except Exception as e:
            logger.exception("Recovery %s failed unexpectedly", session.id)
            session.last_error = redact_text(str(e))
            await self._escalate(session)

    async def _analyze(self, session: RecoverySession, credential: str | None) -> None:
        session.status = RecoveryStatus.ANALYZING
        session.log_step(f"Analyzing {session.provider} error")
        await self._progress(
            session,
            "analyzing",
            f"🔍 Analyzing {session.provider} {session.operation} failure...",
            1,
        )
        try:
            reply = await self._chat.chat(
                [ChatMessage(role="user", content=_analysis_prompt(session))],
                credential,
                "default",
                session.conversation_id,
            )
            analysis = parse_analysis(reply.message)
        except Exception as e:
            # Analysis is advisory; retries proceed with the current parameters.
            logger.warning("Recovery %s analysis failed: %s", session.id, e)
            analysis = {
                "diagnosis": f"Automatic analysis unavailable: {e}",
                "proposedFix": "Retry with the original parameters",
                "modifiedParameters": {},
            }

        session.diagnosis = analysis["diagnosis"]
        session.proposed_fix = analysis["proposedFix"]
        session.parameters.update(analysis["modifiedParameters"])
        session.close_step("completed", f"Analysis complete: {session.diagnosis}")
        await self._progress(
            session,
            "analysis_complete",
            "📋 **Error Analysis Complete**\n\n"
            f"**Diagnosis:** {session.diagnosis}\n\n"
            f"**Proposed Fix:** {session.proposed_fix}",
            1,
            details=analysis,
        )

    async def _attempt(
        self, session: RecoverySession, credential: str | None
    ) -> ProvisioningResult:
        session.status = RecoveryStatus.RETRYING
        session.log_step(f"Attempting fix #{session.attempt}: {session.proposed_fix}")
        await self._progress(
            session,
            "attempting_fix",
            f"🔧 **Recovery Attempt {session.attempt}/{session.max_attempts}**\n\n"
            f"Trying: {session.proposed_fix}",
            2,
            attempt=session.attempt,
        )
        parameters = {
            **session.parameters,
            "retry_attempt": session.attempt,
            "recovery_id": session.id,
        }
        try:
            result = await self._provisioning.invoke(
                session.provider, session.operation, parameters, credential
            )
        except Exception as e:
            result = ProvisioningResult(success=False, error=redact_text(str(e)))

        if result.success:
            session.close_step("completed", f"Fix successful on attempt {session.attempt}")
            return result

        session.last_error = redact_text(result.error) or "Unknown error"
        session.close_step("failed", f"Attempt {session.attempt} failed: {session.last_error}")
        logger.info(
            "Recovery %s attempt %d/%d failed: %s",
            session.id,
            session.attempt,
            session.max_attempts,
            session.last_error,
        )
        return result

    async def _succeed(self, session: RecoverySession, result: ProvisioningResult) -> None:
        if session.is_terminal:
            return
        session.status = RecoveryStatus.SUCCEEDED
        session.ended_at = datetime.now(timezone.utc)
        logger.info("Recovery %s succeeded after %d attempts", session.id, session.attempt)
        await self._emitter.emit(
            EventType.RECOVERY_SUCCESS,
            session.conversation_id,
            {
                "recovery_id": session.id,
                "message": "✅ **Recovery Successful!**\n\n"
                           f"Fixed after {session.attempt} attempts.\n\n"
                           f"**Solution:** {session.proposed_fix}",
                "result": result.result,
                "attempts": session.attempt,
            },
        )

    async def _escalate(self, session: RecoverySession) -> None:
        if session.is_terminal:
            return
        session.status = RecoveryStatus.ESCALATED
        session.ended_at = datetime.now(timezone.utc)
        duration = f"{round((session.ended_at - session.started_at).total_seconds())}s"
        logger.warning(
            "Recovery %s escalated after %d attempts: %s",
            session.id,
            session.attempt,
            session.last_error,
        )
        await self._emitter.emit(
            EventType.RECOVERY_ESCALATED,
            session.conversation_id,
            {
                "recovery_id": session.id,
                "message": "⚠️ **Recovery Unsuccessful**\n\n"
                           f"After {session.attempt} attempts ({duration}), I need your help.\n\n"
                           f"**Last Error:** {session.last_error}\n\n"
                           f"**Tried:** {session.proposed_fix or 'No fix was attempted'}\n\n"
                           "**Options:**\n"
                           f"1. Check your {session.provider} account limits\n"
                           "2. Verify API token permissions\n"
                           "3. Try a different region or size\n"
                           "4. Manual intervention required",
                "attempts": session.attempt,
                "duration": duration,
                "suggestions": ESCALATION_SUGGESTIONS,
            },
        )
