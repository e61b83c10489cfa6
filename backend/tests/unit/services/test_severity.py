"""
Severity Resolution Tests.

WHAT: Unit tests for resolve_severity.

WHY: Emergencies route to on-call staff by email and SMS. Severity may be
raised from the issue type or the description, but never lowered.
"""

import pytest

from workorders.models.ticket import IssueType, TicketSeverity
from workorders.services.ticket_service import has_emergency_keyword, resolve_severity


class TestResolveSeverity:
    """Tests for resolve_severity."""

    def test_requested_severity_kept_when_nothing_raises_it(self):
        assert resolve_severity(
            IssueType.DRAIN_CLOG, TicketSeverity.STANDARD, "Bathroom sink is slow"
        ) == (TicketSeverity.STANDARD, False)

    @pytest.mark.parametrize(
        "issue_type", [IssueType.ACTIVE_LEAK, IssueType.SEWER_BACKUP, IssueType.GAS_SMELL]
    )
    def test_emergency_issue_types(self, issue_type):
        assert resolve_severity(issue_type, TicketSeverity.STANDARD, "Please help") == (
            TicketSeverity.EMERGENCY,
            True,
        )

    def test_water_heater_defaults_to_urgent(self):
        assert resolve_severity(
            IssueType.WATER_HEATER, TicketSeverity.STANDARD, "No hot water"
        ) == (TicketSeverity.URGENT, True)

    def test_keyword_in_description_escalates(self):
        assert resolve_severity(
            IssueType.OTHER_PLUMBING, TicketSeverity.URGENT, "Water is FLOODING the hallway"
        ) == (TicketSeverity.EMERGENCY, True)

    def test_never_lowers_requested_severity(self):
        assert resolve_severity(
            IssueType.DRAIN_CLOG, TicketSeverity.EMERGENCY, "Slow drain"
        ) == (TicketSeverity.EMERGENCY, False)

    def test_already_emergency_is_not_reported_as_escalated(self):
        severity, escalated = resolve_severity(
            IssueType.ACTIVE_LEAK, TicketSeverity.EMERGENCY, "Pipe burst"
        )
        assert severity == TicketSeverity.EMERGENCY
        assert escalated is False


class TestEmergencyKeywords:
    @pytest.mark.parametrize("text", ["smells like rotten egg", "Raw Sewage in tub", "pipe BURST"])
    def test_matches(self, text):
        assert has_emergency_keyword(text)

    def test_no_match(self):
        assert not has_emergency_keyword("Toilet runs constantly")
