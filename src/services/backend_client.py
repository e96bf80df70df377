"""HTTP implementation of the backend collaborator protocols.

Thin wrapper around httpx. Non-2xx responses are mapped to the typed
``BackendError`` family: a structured ``{"error": {"category": ...}}``
body is honored first, then the status code decides.

Example:
    async with HttpBackendClient(config.backend) as client:
        reply = await client.chat(messages, token, "ws-1", "conv-1")
"""

import logging
from typing import Any

import httpx

from src.config import BackendConfig
from src.errors import (
    BackendError,
    CredentialError,
    InternalError,
    ProvisioningError,
    QuotaError,
)
from src.orchestrator.models.backend import BackendReply, ChatMessage, ProvisioningResult
from src.orchestrator.models.plan import (
    ExecutionPlan,
    ExecutionStep,
    PlanStatus,
    StepStatus,
)
from src.utils.redaction import redact_for_logging, redact_text

logger = logging.getLogger(__name__)


def error_from_response(resp: httpx.Response) -> BackendError:
    """Build a typed backend error from a non-2xx response.

    Args:
        resp: The failed httpx response.

    Returns:
        BackendError subclass matching the reported category or status.
    """
    try:
        body = resp.json()
    except ValueError:
        body = {}
    error = body.get("error") if isinstance(body, dict) else None
    if not isinstance(error, dict):
        error = {"message": body.get("detail") if isinstance(body, dict) else None}

    message = redact_text(str(error.get("message") or resp.text or f"HTTP {resp.status_code}"))
    provider = error.get("provider")
    category = error.get("category")
    details = redact_for_logging(error)

    if category in ("missing_credentials", "invalid_key"):
        kind = "missing" if category == "missing_credentials" else "invalid"
        return CredentialError(message, kind=kind, provider=provider, details=details)
    if category in ("rate_limit", "insufficient_credits"):
        return QuotaError(message, kind=category, provider=provider, details=details)
    if category == "provisioning":
        return ProvisioningError(
            message,
            provider=provider,
            operation=error.get("operation"),
            parameters=error.get("parameters"),
            details=details,
        )

    if resp.status_code in (401, 403):
        return CredentialError(message, kind="invalid", provider=provider, details=details)
    if resp.status_code == 402:
        return QuotaError(message, kind="insufficient_credits", provider=provider, details=details)
    if resp.status_code == 429:
        return QuotaError(message, kind="rate_limit", provider=provider, details=details)
    # Unclassified: let the coordinator's text rules look at the message.
    return BackendError(message, provider=provider, details=details)


def plan_from_payload(payload: dict[str, Any], conversation_id: str,
                      user_id: str, workspace_id: str) -> ExecutionPlan:
    """Build an ExecutionPlan from a tool-execution backend payload."""
    steps = [
        ExecutionStep(
            service=raw.get("service", "unknown"),
            action=raw.get("action", "unknown"),
            description=raw.get("description", ""),
            parameters=raw.get("parameters") or {},
            estimated_time=raw.get("estimated_time") or raw.get("estimatedTime"),
            status=StepStatus(raw.get("status", "pending")),
            result=raw.get("result"),
            error=raw.get("error"),
        )
        for raw in payload.get("steps", [])
    ]
    plan = ExecutionPlan(
        conversation_id=conversation_id,
        user_id=user_id,
        workspace_id=workspace_id,
        objective=payload.get("objective", ""),
        steps=steps,
        status=PlanStatus(payload.get("status", "executing")),
        total_estimated_time=payload.get("total_estimated_time"),
    )
    if payload.get("id"):
        plan.id = str(payload["id"])
    return plan


class HttpBackendClient:
    """Chat, tool-execution and provisioning backends over HTTP."""

    def __init__(
        self,
        config: BackendConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize with backend endpoints.

        Args:
            config: Backend URLs, timeout and service key.
            transport: Optional httpx transport (tests pass a MockTransport).
        """
        self._config = config
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "HttpBackendClient":
        """Open the httpx async client."""
        headers = {}
        if self._config.api_key:
            headers["X-API-Key"] = self._config.api_key
        self._client = httpx.AsyncClient(
            timeout=self._config.timeout_seconds,
            headers=headers,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Close the httpx async client."""
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying client if open."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _post(self, url: str, payload: dict[str, Any],
                    credential: str | None) -> dict[str, Any]:
        if self._client is None:
            raise InternalError("Backend client is not open")
        headers = {"Authorization": f"Bearer {credential}"} if credential else {}
        try:
            resp = await self._client.post(url, json=payload, headers=headers)
        except httpx.RequestError as e:
            raise InternalError(f"Backend request failed: {e}") from e
        if resp.status_code >= 400:
            error = error_from_response(resp)
            logger.warning(
                "Backend %s returned %d (%s)", url, resp.status_code, error.category
            )
            raise error
        return resp.json()

    async def chat(
        self,
        messages: list[ChatMessage],
        credential: str | None,
        workspace_id: str,
        conversation_id: str,
    ) -> BackendReply:
        """Run one chat turn via POST {chat_url}."""
        data = await self._post(
            self._config.chat_url,
            {
                "messages": [m.model_dump() for m in messages],
                "workspace_id": workspace_id,
                "conversation_id": conversation_id,
            },
            credential,
        )
        return BackendReply.model_validate(data)

    async def execute_plan(
        self,
        conversation_id: str,
        user_id: str,
        workspace_id: str,
        credential: str,
        request_text: str,
    ) -> ExecutionPlan:
        """Plan and execute a request via POST {tools_url}/execute."""
        data = await self._post(
            f"{self._config.tools_url}/execute",
            {
                "conversation_id": conversation_id,
                "user_id": user_id,
                "workspace_id": workspace_id,
                "request": request_text,
            },
            credential,
        )
        return plan_from_payload(data, conversation_id, user_id, workspace_id)

    async def invoke(
        self,
        provider: str,
        operation: str,
        parameters: dict[str, Any],
        credential: str | None,
    ) -> ProvisioningResult:
        """Invoke a provisioning operation via POST {tools_url}/invoke."""
        data = await self._post(
            f"{self._config.tools_url}/invoke",
            {"provider": provider, "operation": operation, "parameters": parameters},
            credential,
        )
        return ProvisioningResult.model_validate(data)
