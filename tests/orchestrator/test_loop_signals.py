"""Tests for the autonomous loop continue/stop classifier."""

import pytest

from src.orchestrator.autonomous import LoopSignalClassifier

# Long reply that matches no phrase, pattern or question form.
NEUTRAL = (
    "The droplet inventory lists three machines across two regions "
    "with standard sizing applied."
)


@pytest.fixture
def classifier(rules) -> LoopSignalClassifier:
    return LoopSignalClassifier(rules.loop)


class TestSignalPriority:
    """Tests that the first matching row wins."""

    def test_critical_failure_beats_active_work(self, classifier):
        """A failure phrase stops even when activity words are present."""
        decision = classifier.classify("Authentication failed while deploying the app", 1)

        assert decision.outcome == "stop"
        assert decision.rule == "critical_failure"
        assert decision.reason == "Critical error encountered"
        assert decision.tone == "error"

    def test_completion(self, classifier):
        """Completion phrases stop with a success tone."""
        decision = classifier.classify(
            "Deployment completed successfully! Your application is live.", 2
        )

        assert not decision.should_continue
        assert decision.rule == "completion"
        assert decision.reason == "Task completed successfully"
        assert decision.tone == "success"

    def test_user_decision_beats_active_work(self, classifier):
        """Asking the user stops even if the reply mentions configuring."""
        decision = classifier.classify(
            "I am configuring the firewall. Would you like me to open port 8080 as well?", 1
        )

        assert decision.rule == "user_decision"
        assert decision.reason == "User input required"
        assert decision.tone == "needs_input"

    def test_external_wait(self, classifier):
        """Long-running operation phrases stop with the waiting tone."""
        decision = classifier.classify("DNS propagation in progress, please wait.", 1)

        assert decision.rule == "external_wait"
        assert decision.tone == "waiting"

    def test_active_work_continues(self, classifier):
        """Activity phrases continue the loop."""
        decision = classifier.classify(
            "Next step: provisioning the database cluster in nyc3.", 1
        )

        assert decision.should_continue
        assert decision.rule == "active_work"
        assert decision.reason == ""

    def test_tool_execution_pattern_continues(self, classifier):
        """Tool execution patterns continue the loop."""
        decision = classifier.classify(
            "Calling the cloud api to list droplet sizes for both regions you named", 1
        )

        assert decision.should_continue
        assert decision.rule == "tool_execution"

    def test_progress_marker_continues(self, classifier):
        """Progress markers continue even for short replies."""
        decision = classifier.classify("Phase 2: networking", 1)

        assert decision.should_continue
        assert decision.rule == "progress_marker"

    def test_short_reply_stops(self, classifier):
        """Replies under ten words with no signal stop as complete."""
        decision = classifier.classify("All good, thanks.", 1)

        assert decision.rule == "short_reply"
        assert decision.reason == "Task completed (brief final reply)"
        assert decision.tone == "success"

    def test_trailing_question_stops(self, classifier):
        """A long reply ending in a question waits for the user."""
        decision = classifier.classify(
            "The two regions offer different latency profiles for your users in Europe, "
            "which fits better?",
            1,
        )

        assert decision.rule == "question"
        assert decision.reason == "User decision required"
        assert decision.tone == "needs_input"

    def test_question_opener_needs_whole_word(self, classifier):
        """Opening words like "is" only count as a question when they stand alone."""
        question = classifier.classify(
            "Is the staging region close enough to your users for this workload", 1
        )
        statement = classifier.classify(
            "Isolated staging workloads sit on a separate private network segment inside one region.",
            1,
        )

        assert question.rule == "question"
        assert statement.rule != "question"
        assert statement.outcome == "continue"

    def test_case_insensitive(self, classifier):
        """Matching ignores case."""
        decision = classifier.classify("INFRASTRUCTURE IS READY for traffic.", 1)

        assert decision.rule == "completion"


class TestIterationFallback:
    """Tests for the iteration bands applied when nothing else matched."""

    @pytest.mark.parametrize("iteration", [1, 2, 3, 4, 5, 6])
    def test_early_iterations_continue(self, classifier, iteration):
        """Iterations 1-6 continue on an unclassified reply."""
        decision = classifier.classify(NEUTRAL, iteration)

        assert decision.should_continue
        assert decision.rule == "iteration_fallback"

    def test_iteration_seven_hits_default(self, classifier):
        """Iteration 7 is outside every band and falls to the default stop."""
        decision = classifier.classify(NEUTRAL, 7)

        assert decision.outcome == "stop"
        assert decision.rule == "default"
        assert decision.reason == "Natural stopping point reached"

    @pytest.mark.parametrize("iteration", [8, 9, 12])
    def test_late_iterations_stop(self, classifier, iteration):
        """Iterations from 8 stop at a natural point."""
        decision = classifier.classify(NEUTRAL, iteration)

        assert decision.outcome == "stop"
        assert decision.rule == "iteration_fallback"
        assert decision.reason == "Natural stopping point reached"

    def test_empty_reply_is_short(self, classifier):
        """An empty reply counts as a short final reply."""
        assert classifier.classify("", 3).rule == "short_reply"
