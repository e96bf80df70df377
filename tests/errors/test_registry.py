"""Tests for the remediation registry."""

import re

from src.errors import REMEDIATION_REGISTRY, ErrorCategory, get_remediation
from src.errors.domain import NotFoundError


class TestRemediationRegistry:
    """Tests for registry contents and lookup."""

    def test_codes_are_unique_and_formatted(self):
        """Every entry has a unique E-XXXX code matching its key."""
        codes = [r.code for r in REMEDIATION_REGISTRY.values()]

        assert len(codes) == len(set(codes))
        for category, remediation in REMEDIATION_REGISTRY.items():
            assert re.fullmatch(r"E-\d{4}", remediation.code)
            assert remediation.category is category

    def test_expected_codes(self):
        """Known categories map to their codes."""
        assert get_remediation(ErrorCategory.MISSING_CREDENTIALS).code == "E-5001"
        assert get_remediation(ErrorCategory.INVALID_KEY).code == "E-5002"
        assert get_remediation(ErrorCategory.INSUFFICIENT_CREDITS).code == "E-3001"
        assert get_remediation(ErrorCategory.RATE_LIMIT).code == "E-3002"

    def test_rate_limit_is_retryable(self):
        """Only rate limits are retryable without user action."""
        assert get_remediation("rate_limit").is_retryable is True
        assert get_remediation("invalid_key").is_retryable is False

    def test_unknown_falls_back_to_internal(self):
        """Unknown and unregistered categories use the internal entry."""
        assert get_remediation("bogus").code == "E-4001"
        assert get_remediation(ErrorCategory.PROVISIONING).code == "E-4001"


class TestDomainErrors:
    """Tests for domain exception messages."""

    def test_not_found_message(self):
        """NotFoundError formats its message from type and ID."""
        error = NotFoundError("Plan", "abc")

        assert str(error) == "Plan 'abc' not found"
        assert error.resource_type == "Plan"
        assert error.identifier == "abc"
