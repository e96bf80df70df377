"""Backend error classification to remediation categories.

Typed ``BackendError`` instances carry their category as a tag and are
classified without looking at the message. Untyped exceptions, and
backend errors tagged only ``internal`` (an unclassified non-2xx
response), fall back to the ordered text patterns in the rule tables.
"""

import logging

from src.errors.domain import BackendError
from src.errors.registry import (
    PROVIDER_BILLING_URLS,
    ErrorCategory,
    get_remediation,
)
from src.orchestrator.rules.schema import BackendErrorRule

logger = logging.getLogger(__name__)

_PROVIDER_LABELS = {"anthropic": "Anthropic", "openai": "OpenAI"}


def classify_backend_error(
    error: BaseException,
    text_rules: list[BackendErrorRule],
) -> ErrorCategory:
    """Map a backend failure to a remediation category.

    Args:
        error: Exception raised by the backend call.
        text_rules: Ordered fallback rules for untyped errors.

    Returns:
        ErrorCategory; INTERNAL when nothing matches.
    """
    if isinstance(error, BackendError) and error.category != ErrorCategory.INTERNAL.value:
        try:
            return ErrorCategory(error.category)
        except ValueError:
            logger.warning("Unknown error category on %s: %s", type(error).__name__, error.category)

    # Errors tagged only "internal" still go through the text rules.
    text = str(error).lower()
    for rule in text_rules:
        if any(phrase in text for phrase in rule.phrases):
            try:
                return ErrorCategory(rule.category)
            except ValueError:
                logger.warning("Unknown error category in rules: %s", rule.category)
    return ErrorCategory.INTERNAL


def infer_llm_provider(error: BaseException) -> str | None:
    """Best-effort LLM provider name for billing links.

    Args:
        error: Exception raised by the backend call.

    Returns:
        Lowercase provider name, or None if unknown.
    """
    provider = getattr(error, "provider", None)
    if provider:
        return str(provider).lower()
    text = str(error).lower()
    for name in PROVIDER_BILLING_URLS:
        if name in text:
            return name
    return None


def build_remediation(category: ErrorCategory, provider: str | None = None) -> tuple[str, list[dict]]:
    """Render the message and suggested actions for a category.

    Args:
        category: Remediation category.
        provider: LLM provider for billing links (insufficient credits only).

    Returns:
        Tuple of (message, suggested action dicts).
    """
    remediation = get_remediation(category)
    provider_key = provider if provider in PROVIDER_BILLING_URLS else "openai"
    context = {
        "provider_label": _PROVIDER_LABELS.get(provider_key, provider_key),
        "billing_url": PROVIDER_BILLING_URLS[provider_key],
    }

    message = remediation.message_template.format(**context)
    actions = [
        {
            "id": action.id,
            "text": action.text,
            "action_type": action.action_type,
            "action_data": {
                key: value.format(**context) if isinstance(value, str) else value
                for key, value in action.action_data.items()
            },
        }
        for action in remediation.actions
    ]
    return message, actions
