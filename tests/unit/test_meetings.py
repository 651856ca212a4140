"""
Unit Tests for the Meeting Coordinator

Tests for scheduling, lifecycle transitions, decisions, invitations and the
plain-text meeting summary.
"""
import pytest
from datetime import datetime, timezone

from mdt_engine.core.careplan.base import InvitationStatus, MeetingStatus, PriorityLevel
from mdt_engine.core.careplan.meetings import (
    MEETING_TRANSITIONS,
    MeetingCoordinator,
    build_default_agenda,
    generate_meeting_summary,
)
from mdt_engine.utils import NotFoundError, PlanValidationError, WorkflowStateError

SCHEDULED_FOR = datetime(2024, 3, 4, 14, 0, tzinfo=timezone.utc)


@pytest.fixture
def coordinator(fixed_now) -> MeetingCoordinator:
    return MeetingCoordinator(clock=lambda: fixed_now)


@pytest.fixture
def meeting(coordinator, surgeon, nurse):
    return coordinator.create_meeting(
        "PAT-001", "Post-op review", SCHEDULED_FOR, 45, [surgeon, nurse], "dr-primary",
        location="Ward 7 seminar room", objectives="Agree wound management",
    )


class TestScheduling:
    def test_create_meeting(self, meeting, surgeon):
        assert meeting.status == MeetingStatus.SCHEDULED
        assert meeting.decisions == []
        assert meeting.attendees[0] is surgeon
        assert meeting.virtual_link is None

    def test_default_agenda_from_objectives(self, meeting):
        assert [a.id for a in meeting.agenda] == ["agenda-1", "agenda-2", "agenda-3", "agenda-4"]
        assert meeting.agenda[1].description == "Agree wound management"
        assert sum(a.duration for a in build_default_agenda("x", "y")) == 60

    def test_no_objectives_no_agenda(self, coordinator):
        meeting = coordinator.create_meeting("PAT-001", "Review", SCHEDULED_FOR)
        assert meeting.agenda == []

    def test_virtual_meeting_gets_link(self, coordinator):
        meeting = coordinator.create_meeting("PAT-001", "Review", SCHEDULED_FOR, virtual=True)
        assert meeting.virtual_link.endswith(meeting.id)

    @pytest.mark.parametrize("patient_id,duration", [("", 60), ("PAT-001", 0)])
    def test_invalid_meeting(self, coordinator, patient_id, duration):
        with pytest.raises(PlanValidationError):
            coordinator.create_meeting(patient_id, "Review", SCHEDULED_FOR, duration)

    def test_unknown_meeting(self, coordinator):
        with pytest.raises(NotFoundError):
            coordinator.get_meeting("missing")

    def test_meetings_for_patient_by_date(self, coordinator):
        later = coordinator.create_meeting("PAT-001", "Later", datetime(2024, 4, 1, tzinfo=timezone.utc))
        earlier = coordinator.create_meeting("PAT-001", "Earlier", SCHEDULED_FOR)
        coordinator.create_meeting("PAT-002", "Other", SCHEDULED_FOR)
        assert coordinator.meetings_for_patient("PAT-001") == [earlier, later]


class TestLifecycle:
    def test_transition_table_is_exhaustive(self):
        assert set(MEETING_TRANSITIONS) == set(MeetingStatus)

    def test_start_then_complete(self, coordinator, meeting):
        coordinator.start_meeting(meeting.id)
        done = coordinator.complete_meeting(meeting.id, "Plan agreed", SCHEDULED_FOR)
        assert done.status == MeetingStatus.COMPLETED
        assert done.minutes == "Plan agreed"
        assert all(item.completed for item in done.agenda)

    def test_cannot_complete_unstarted(self, coordinator, meeting):
        with pytest.raises(WorkflowStateError):
            coordinator.complete_meeting(meeting.id)

    def test_cancel_requires_reason(self, coordinator, meeting):
        with pytest.raises(PlanValidationError):
            coordinator.cancel_meeting(meeting.id, " ")
        cancelled = coordinator.cancel_meeting(meeting.id, "Patient transferred")
        assert cancelled.status == MeetingStatus.CANCELLED
        assert cancelled.cancellation_reason == "Patient transferred"
        with pytest.raises(WorkflowStateError):
            coordinator.start_meeting(meeting.id)

    def test_decisions_need_in_progress(self, coordinator, meeting):
        with pytest.raises(WorkflowStateError):
            coordinator.record_decision(meeting.id, "Wound care", "TDS dressings")
        coordinator.start_meeting(meeting.id)
        decision = coordinator.record_decision(
            meeting.id, "Wound care", "TDS dressings", responsible=["rn-nurse"],
            priority=PriorityLevel.URGENT,
        )
        assert meeting.decisions == [decision]


class TestInvitations:
    def test_invite_adds_attendee(self, coordinator, meeting, pharmacist):
        invitation = coordinator.invite_specialist(meeting.id, pharmacist, "dr-primary")
        assert invitation.status == InvitationStatus.PENDING
        assert "Pharmacy" in invitation.message
        assert pharmacist in meeting.attendees

    def test_invite_is_idempotent(self, coordinator, meeting, pharmacist):
        first = coordinator.invite_specialist(meeting.id, pharmacist, "dr-primary")
        again = coordinator.invite_specialist(meeting.id, pharmacist, "dr-primary")
        assert again is first
        assert len(meeting.invitations) == 1

    def test_acknowledge_and_submit(self, coordinator, meeting, pharmacist, fixed_now):
        invitation = coordinator.invite_specialist(meeting.id, pharmacist, "dr-primary")
        assert coordinator.pending_invitations(pharmacist.id) == [invitation]

        coordinator.acknowledge_invitation(invitation.id)
        assert invitation.status == InvitationStatus.ACKNOWLEDGED
        assert invitation.acknowledged_at == fixed_now

        coordinator.mark_plan_submitted(meeting.id, pharmacist.id)
        assert invitation.status == InvitationStatus.PLAN_SUBMITTED
        assert coordinator.pending_invitations(pharmacist.id) == []

    def test_mark_uninvited_is_noop(self, coordinator, meeting, physician):
        assert coordinator.mark_plan_submitted(meeting.id, physician.id) is None

    def test_no_invitations_to_closed_meeting(self, coordinator, meeting, pharmacist):
        coordinator.cancel_meeting(meeting.id, "Rescheduled")
        with pytest.raises(WorkflowStateError):
            coordinator.invite_specialist(meeting.id, pharmacist, "dr-primary")

    def test_unknown_invitation(self, coordinator):
        with pytest.raises(NotFoundError):
            coordinator.acknowledge_invitation("missing")


class TestSummary:
    def test_summary_text(self, coordinator, meeting):
        coordinator.start_meeting(meeting.id)
        coordinator.record_decision(meeting.id, "Wound care", "TDS dressings")
        coordinator.complete_meeting(meeting.id, "Reviewed in full")

        summary = generate_meeting_summary(meeting)
        lines = summary.splitlines()
        assert lines[0] == "MDT MEETING SUMMARY"
        assert "Date: 04 Mar 2024" in lines
        assert "Location: Ward 7 seminar room" in lines
        assert "Dr. Okafor (Surgery), Sister Patel (Nursing)" in lines
        assert "- Wound care: TDS dressings" in lines
        assert lines[-1] == "Reviewed in full"
