"""Continue/stop classification for autonomous loop replies.

Evaluates the loop's ordered signal table over an assistant reply.
The first matching row wins, so failure, completion and human-need
signals always beat generic activity signals. The table's last row is
an unconditional stop, so every reply gets a decision.
"""

import logging
import re
from dataclasses import dataclass

from src.orchestrator.rules.schema import LoopRules, SignalRule, StopTone

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SignalDecision:
    """Outcome of classifying one assistant reply.

    Attributes:
        outcome: "continue" or "stop".
        rule: Name of the signal-table row that matched.
        reason: Stopping reason shown in the summary (empty when continuing).
        tone: Summary phrasing hint (success, needs_input, error, ...).
    """

    outcome: str
    rule: str
    reason: str = ""
    tone: StopTone = "neutral"

    @property
    def should_continue(self) -> bool:
        return self.outcome == "continue"


class LoopSignalClassifier:
    """Evaluates the loop signal table against assistant replies."""

    def __init__(self, rules: LoopRules) -> None:
        self._rows = rules.signal_table
        self._compiled: dict[str, list[re.Pattern[str]]] = {
            row.name: [re.compile(p) for p in row.patterns]
            for row in rules.signal_table
            if row.patterns
        }

    def classify(self, text: str, iteration: int) -> SignalDecision:
        """Decide whether the loop continues after this reply.

        Args:
            text: The assistant's free-text reply.
            iteration: 1-based iteration that produced the reply.

        Returns:
            SignalDecision from the first matching row.
        """
        lowered = (text or "").strip().lower()
        for row in self._rows:
            outcome = self._match(row, lowered, iteration)
            if outcome is None:
                continue
            logger.debug(
                "Iteration %d matched signal row %s -> %s", iteration, row.name, outcome
            )
            if outcome == "continue":
                return SignalDecision(outcome="continue", rule=row.name)
            return SignalDecision(
                outcome="stop",
                rule=row.name,
                reason=row.reason or "Natural stopping point reached",
                tone=row.tone,
            )
        # Unreachable with a validated table; stop fail-safe regardless.
        return SignalDecision(outcome="stop", rule="default", reason="Natural stopping point reached")

    def _match(self, row: SignalRule, lowered: str, iteration: int) -> str | None:
        if row.phrases:
            return row.outcome if any(p in lowered for p in row.phrases) else None
        if row.patterns:
            hit = any(p.search(lowered) for p in self._compiled[row.name])
            return row.outcome if hit else None
        if row.max_words is not None:
            return row.outcome if len(lowered.split()) < row.max_words else None
        if row.iteration_bands:
            for band in row.iteration_bands:
                if band.contains(iteration):
                    return band.outcome
            return None
        return row.outcome
