"""Tests for the autonomous execution summary."""

from src.orchestrator.autonomous import build_execution_summary, group_tools_by_service


class TestGroupToolsByService:
    """Tests for grouping tool names by service prefix."""

    def test_known_and_unknown_prefixes(self, rules):
        """Known prefixes use their label, unknown ones a generic label."""
        groups = group_tools_by_service(
            ["atlas_provision_infrastructure", "neptune_configure_dns", "zeus_deploy", "plain"],
            rules.loop.service_labels,
        )

        assert groups["🏗️ Atlas (Infrastructure)"] == ["provision_infrastructure"]
        assert groups["🌐 Neptune (DNS/Domain)"] == ["configure_dns"]
        assert groups["ZEUS Service"] == ["deploy"]
        assert groups["PLAIN Service"] == ["plain"]

    def test_order_follows_first_appearance(self, rules):
        """Groups keep the order their first tool appeared in."""
        groups = group_tools_by_service(
            ["phoenix_deploy", "atlas_create", "phoenix_restart"],
            rules.loop.service_labels,
        )

        assert list(groups) == ["🚀 Phoenix (Deployment)", "🏗️ Atlas (Infrastructure)"]
        assert groups["🚀 Phoenix (Deployment)"] == ["deploy", "restart"]


class TestBuildExecutionSummary:
    """Tests for the summary text."""

    def test_success_summary(self, rules):
        """A success tone uses the completion heading and deduplicates tools."""
        text = build_execution_summary(
            2,
            1500,
            ["atlas_provision_infrastructure", "atlas_provision_infrastructure"],
            "Task completed successfully",
            "success",
            rules.loop.service_labels,
        )

        assert text.startswith("✅ **Autonomous Execution Complete**")
        assert "• **Iterations**: 2 autonomous cycles" in text
        assert "• **Token Usage**: 1,500 tokens" in text
        assert "• **Tools Executed**: 1 unique tools" in text
        assert "• **Stopping Reason**: Task completed successfully" in text
        assert "• **🏗️ Atlas (Infrastructure)**: provision_infrastructure" in text
        assert "Performance Note" not in text

    def test_non_success_heading(self, rules):
        """Other tones use the finished heading and no operations section."""
        text = build_execution_summary(
            1, 100, [], "User input required", "needs_input", rules.loop.service_labels
        )

        assert text.startswith("🔄 **Autonomous Execution Finished**")
        assert "Infrastructure Operations Performed" not in text
        assert "Awaiting your input" in text

    def test_performance_note_above_threshold(self, rules):
        """Token usage above 20000 adds a performance note."""
        text = build_execution_summary(
            3, 20001, [], "Token usage limit reached", "budget", rules.loop.service_labels
        )

        assert "⚡ **Performance Note**" in text
        assert "3 iterations and 20,001 tokens" in text

    def test_no_note_at_threshold(self, rules):
        """Exactly 20000 tokens is not above the threshold."""
        text = build_execution_summary(
            3, 20000, [], "Maximum iterations reached", "neutral", rules.loop.service_labels
        )

        assert "Performance Note" not in text
