"""Remediation registry with E-XXXX format codes.

This module defines the user-facing remediation for each classified
backend error, organizing errors into categories:
- E-3xxx: Provider quota and billing errors
- E-4xxx: System/internal errors
- E-5xxx: Credential errors

Each entry includes a code, title, message template, and the suggested
actions shown next to the message (settings deep-links, billing links).
"""

from dataclasses import dataclass, field
from enum import Enum


class ErrorCategory(str, Enum):
    """Remediation tags produced by the backend boundary."""

    MISSING_CREDENTIALS = "missing_credentials"
    INVALID_KEY = "invalid_key"
    INSUFFICIENT_CREDITS = "insufficient_credits"
    RATE_LIMIT = "rate_limit"
    PROVISIONING = "provisioning"
    INTERNAL = "internal"


@dataclass
class SuggestedActionTemplate:
    """A suggested action rendered next to an error message.

    Attributes:
        id: Stable action identifier.
        text: Button label.
        action_type: One of 'settings', 'link', 'quick_reply'.
        action_data: Action payload ({section} for settings, {url} for links).
    """

    id: str
    text: str
    action_type: str
    action_data: dict = field(default_factory=dict)


@dataclass
class Remediation:
    """Definition of a remediation with metadata.

    Attributes:
        code: Error code in E-XXXX format.
        category: Remediation tag.
        title: Short title for display.
        message_template: Message with {placeholders} for context.
        actions: Suggested actions shown with the message.
        is_retryable: Whether the operation can be retried without user action.
    """

    code: str  # E-XXXX format
    category: ErrorCategory
    title: str
    message_template: str
    actions: list[SuggestedActionTemplate] = field(default_factory=list)
    is_retryable: bool = False


_CREDENTIALS_SECTION = {"section": "llm_credentials"}

# Billing pages per LLM provider, used for the add-credits action
PROVIDER_BILLING_URLS: dict[str, str] = {
    "anthropic": "https://console.anthropic.com/settings/billing",
    "openai": "https://platform.openai.com/account/billing",
}

REMEDIATION_REGISTRY: dict[ErrorCategory, Remediation] = {
    ErrorCategory.MISSING_CREDENTIALS: Remediation(
        code="E-5001",
        category=ErrorCategory.MISSING_CREDENTIALS,
        title="No LLM Credentials Configured",
        message_template=(
            "⚠️ **No LLM Credentials Configured**\n\n"
            "You need to configure LLM API credentials before I can work on "
            "your infrastructure.\n\n"
            "**Supported Providers:**\n"
            "• OpenAI\n"
            "• Anthropic\n\n"
            "Please add your API keys in the settings."
        ),
        actions=[
            SuggestedActionTemplate(
                id="configure_llm",
                text="Configure LLM Credentials",
                action_type="settings",
                action_data=_CREDENTIALS_SECTION,
            ),
        ],
    ),
    ErrorCategory.INVALID_KEY: Remediation(
        code="E-5002",
        category=ErrorCategory.INVALID_KEY,
        title="Invalid API Key",
        message_template=(
            "⚠️ **Invalid API Key**\n\n"
            "Your LLM API key appears to be invalid or expired.\n"
            "Please update your credentials in the settings."
        ),
        actions=[
            SuggestedActionTemplate(
                id="update_credentials",
                text="Update API Credentials",
                action_type="settings",
                action_data=_CREDENTIALS_SECTION,
            ),
        ],
    ),
    ErrorCategory.INSUFFICIENT_CREDITS: Remediation(
        code="E-3001",
        category=ErrorCategory.INSUFFICIENT_CREDITS,
        title="Insufficient LLM Credits",
        message_template=(
            "⚠️ **Insufficient LLM Credits**\n\n"
            "Your LLM provider account has insufficient credits to process "
            "this request.\n\n"
            "**Option 1: Add Credits**\n"
            "Add credits to your {provider_label} account at:\n"
            "{billing_url}\n\n"
            "**Option 2: Switch Providers**\n"
            "Configure a different LLM provider in your settings."
        ),
        actions=[
            SuggestedActionTemplate(
                id="add_credits",
                text="Add Credits to Current Provider",
                action_type="link",
                action_data={"url": "{billing_url}"},
            ),
            SuggestedActionTemplate(
                id="switch_provider",
                text="Configure Different Provider",
                action_type="settings",
                action_data=_CREDENTIALS_SECTION,
            ),
        ],
    ),
    ErrorCategory.RATE_LIMIT: Remediation(
        code="E-3002",
        category=ErrorCategory.RATE_LIMIT,
        title="Rate Limit Exceeded",
        message_template=(
            "⚠️ **Rate Limit Exceeded**\n\n"
            "You've exceeded the rate limit for your LLM provider.\n"
            "Please wait a moment before trying again, or consider upgrading your plan."
        ),
        is_retryable=True,
    ),
    ErrorCategory.INTERNAL: Remediation(
        code="E-4001",
        category=ErrorCategory.INTERNAL,
        title="Unexpected Error",
        message_template=(
            "I encountered an error processing your request. "
            "Please try again in a moment."
        ),
    ),
}


def get_remediation(category: ErrorCategory | str) -> Remediation:
    """Look up remediation by category, falling back to the internal entry.

    Args:
        category: ErrorCategory or its string value.

    Returns:
        Remediation for the category.
    """
    try:
        key = ErrorCategory(category)
    except ValueError:
        return REMEDIATION_REGISTRY[ErrorCategory.INTERNAL]
    return REMEDIATION_REGISTRY.get(key, REMEDIATION_REGISTRY[ErrorCategory.INTERNAL])
