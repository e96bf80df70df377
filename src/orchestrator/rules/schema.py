"""Pydantic schema for the heuristic rule tables.

The tables are data, not code: they are loaded from YAML and validated
here so a malformed override file fails at startup rather than at the
first classification.
"""

import re
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

LoopOutcome = Literal["continue", "stop"]
StopTone = Literal["success", "needs_input", "error", "waiting", "neutral", "budget"]


def _lowered(values: list[str]) -> list[str]:
    return [v.strip().lower() for v in values if v and v.strip()]


class IterationBand(BaseModel):
    """Iteration range mapped to an outcome (inclusive bounds)."""

    min: int = Field(default=1, ge=1)
    max: int | None = None
    outcome: LoopOutcome

    def contains(self, iteration: int) -> bool:
        """Return True if the iteration falls inside this band."""
        if iteration < self.min:
            return False
        return self.max is None or iteration <= self.max


class SignalRule(BaseModel):
    """One row of the continue/stop decision table.

    Exactly one matcher kind is used per row: phrases, patterns,
    max_words, or iteration_bands. A row with no matcher always matches
    and is the table's default.
    """

    name: str
    outcome: LoopOutcome
    tone: StopTone = "neutral"
    reason: str = ""
    phrases: list[str] = []
    patterns: list[str] = []
    max_words: int | None = Field(default=None, ge=1)
    iteration_bands: list[IterationBand] = []

    @field_validator("phrases")
    @classmethod
    def lower_phrases(cls, value: list[str]) -> list[str]:
        """Normalize phrases to lowercase."""
        return _lowered(value)

    @field_validator("patterns")
    @classmethod
    def compile_check(cls, value: list[str]) -> list[str]:
        """Reject patterns that do not compile."""
        for pattern in value:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"Invalid pattern {pattern!r}: {e}") from e
        return value

    @model_validator(mode="after")
    def one_matcher(self) -> "SignalRule":
        """Ensure at most one matcher kind is populated."""
        kinds = sum(
            1
            for populated in (
                self.phrases,
                self.patterns,
                self.max_words is not None,
                self.iteration_bands,
            )
            if populated
        )
        if kinds > 1:
            raise ValueError(f"Signal rule '{self.name}' mixes matcher kinds")
        return self


class LoopRules(BaseModel):
    """Rules for the autonomous loop."""

    signal_table: list[SignalRule] = Field(..., min_length=1)
    continuation_prompts: list[str] = Field(..., min_length=1)
    service_labels: dict[str, str] = {}

    @model_validator(mode="after")
    def ends_with_default(self) -> "LoopRules":
        """The last row must be an unconditional default so every reply gets a decision."""
        last = self.signal_table[-1]
        if last.phrases or last.patterns or last.max_words or last.iteration_bands:
            raise ValueError("Last signal rule must be an unconditional default")
        return self


class ApprovalRules(BaseModel):
    """Token lexicons for approval replies. Checked reject, modify, approve."""

    reject: list[str]
    modify: list[str]
    approve: list[str]

    @field_validator("reject", "modify", "approve")
    @classmethod
    def lower_tokens(cls, value: list[str]) -> list[str]:
        """Normalize tokens to lowercase."""
        return _lowered(value)


class IntentRules(BaseModel):
    """Lexicons for routing inbound messages."""

    deployment_keywords: list[str]
    deployment_patterns: list[str] = []
    execute_commands: list[str]

    @field_validator("deployment_keywords", "execute_commands")
    @classmethod
    def lower_terms(cls, value: list[str]) -> list[str]:
        """Normalize terms to lowercase."""
        return _lowered(value)


class ProviderRule(BaseModel):
    """Keywords that identify a cloud provider."""

    name: str
    keywords: list[str]


class OperationRule(BaseModel):
    """Keywords that identify a provisioning operation."""

    name: str
    error_keywords: list[str] = []
    input_keywords: list[str] = []


class ProvisioningFailureRules(BaseModel):
    """Classifier for provisioning failures eligible for recovery."""

    error_keywords: list[str]
    input_keywords: list[str]
    providers: list[ProviderRule] = []
    default_provider: str = "digitalocean"
    operations: list[OperationRule] = []
    default_operation: str = "provision_infrastructure"
    default_parameters: dict = {}

    @field_validator("error_keywords", "input_keywords")
    @classmethod
    def lower_keywords(cls, value: list[str]) -> list[str]:
        """Normalize keywords to lowercase."""
        return _lowered(value)


class BackendErrorRule(BaseModel):
    """Fallback text match for untyped backend errors."""

    category: str
    phrases: list[str]

    @field_validator("phrases")
    @classmethod
    def lower_phrases(cls, value: list[str]) -> list[str]:
        """Normalize phrases to lowercase."""
        return _lowered(value)


class RuleSet(BaseModel):
    """All rule tables used by the orchestration core."""

    loop: LoopRules
    approval: ApprovalRules
    intent: IntentRules
    provisioning_failure: ProvisioningFailureRules
    backend_errors: list[BackendErrorRule] = []
