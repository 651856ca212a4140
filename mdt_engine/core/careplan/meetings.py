"""
Meeting Coordinator

Schedules MDT meetings and tracks their lifecycle, agenda, decisions and
specialist invitations. Meetings supply the patient/meeting context that
plans and care plans are keyed on; no merge logic lives here.

    scheduled ──start──▶ in_progress ──complete──▶ completed
        │                     │
        └──────cancel─────────┴──────────────────▶ cancelled
"""
from __future__ import annotations

import threading
import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, FrozenSet, List, Optional, Sequence

from mdt_engine import config
from mdt_engine.utils import get_logger, NotFoundError, PlanValidationError, WorkflowStateError
from .base import (
    AgendaItem,
    InvitationStatus,
    MDTDecision,
    MDTMeeting,
    MeetingInvitation,
    MeetingStatus,
    PriorityLevel,
    TeamMember,
)
from .specialties import display_name

logger = get_logger(__name__)

MEETING_TRANSITIONS: Dict[MeetingStatus, FrozenSet[MeetingStatus]] = {
    MeetingStatus.SCHEDULED:   frozenset({MeetingStatus.IN_PROGRESS, MeetingStatus.CANCELLED}),
    MeetingStatus.IN_PROGRESS: frozenset({MeetingStatus.COMPLETED, MeetingStatus.CANCELLED}),
    MeetingStatus.COMPLETED:   frozenset(),
    MeetingStatus.CANCELLED:   frozenset(),
}

assert set(MEETING_TRANSITIONS) == set(MeetingStatus), "unhandled MeetingStatus"

_OPEN_MEETING_STATES = frozenset({MeetingStatus.SCHEDULED, MeetingStatus.IN_PROGRESS})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_default_agenda(objectives: str, presenter: str) -> List[AgendaItem]:
    """The standard four-item agenda used when none is supplied."""
    return [
        AgendaItem(
            id="agenda-1",
            title="Patient Case Review",
            description="Review of the patient's clinical history and current status",
            presenter=presenter or "Presenter",
            duration=15,
        ),
        AgendaItem(
            id="agenda-2",
            title="Meeting Objectives Discussion",
            description=objectives,
            presenter="All Team Members",
            duration=20,
        ),
        AgendaItem(
            id="agenda-3",
            title="Treatment Plan Harmonization",
            description="Review and harmonize treatment recommendations from all specialties",
            presenter="Primary Consultant",
            duration=15,
        ),
        AgendaItem(
            id="agenda-4",
            title="Action Items & Next Steps",
            description="Define action items, responsibilities, and follow-up schedule",
            presenter="All Team Members",
            duration=10,
        ),
    ]


def generate_meeting_summary(meeting: MDTMeeting) -> str:
    """Plain-text summary of a meeting for the record or export."""
    attendee_list = ", ".join(
        f"{a.name} ({display_name(a.specialty)})" for a in meeting.attendees
    )
    agenda_list = "\n".join(f"- {a.title}" for a in meeting.agenda)
    decisions_list = "\n".join(f"- {d.topic}: {d.decision}" for d in meeting.decisions)

    sections = [
        "MDT MEETING SUMMARY",
        "===================",
        "",
        f"Date: {meeting.scheduled_date.strftime('%d %b %Y')}",
        f"Duration: {meeting.duration} minutes",
        f"Location: {meeting.location or 'Virtual'}",
        f"Status: {meeting.status.value}",
        "",
        "ATTENDEES:",
        attendee_list,
        "",
        "AGENDA ITEMS DISCUSSED:",
        agenda_list,
        "",
        "KEY DECISIONS:",
        decisions_list,
    ]
    if meeting.next_meeting_date:
        sections += ["", f"NEXT MEETING: {meeting.next_meeting_date.strftime('%d %b %Y')}"]
    if meeting.minutes:
        sections += ["", meeting.minutes]
    return "\n".join(sections).strip()


class MeetingCoordinator:
    """Owns MDT meetings in memory and applies their lifecycle transitions."""

    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        self._clock = clock
        self._meetings: Dict[str, MDTMeeting] = {}
        self._lock = threading.Lock()

    # ── Creation / lookup ────────────────────────────────────────────────────

    def create_meeting(
        self,
        patient_id: str,
        title: str,
        scheduled_date: datetime,
        duration: int = config.DEFAULT_MEETING_MINUTES,
        attendees: Optional[Sequence[TeamMember]] = None,
        created_by: str = "",
        *,
        location: Optional[str] = None,
        virtual: bool = False,
        objectives: str = "",
        patient_summary: str = "",
        agenda: Optional[Sequence[AgendaItem]] = None,
    ) -> MDTMeeting:
        """Schedule a meeting: status scheduled, no decisions yet."""
        if not patient_id or not patient_id.strip():
            raise PlanValidationError("patient_id must not be empty", field="patient_id")
        if duration <= 0:
            raise PlanValidationError(f"Invalid meeting duration {duration}", field="duration")

        now = self._clock()
        meeting_id = str(uuid.uuid4())
        if agenda is None:
            agenda = build_default_agenda(objectives, created_by) if objectives else []

        meeting = MDTMeeting(
            id=meeting_id,
            patient_id=patient_id.strip(),
            title=title or "MDT Meeting",
            scheduled_date=scheduled_date,
            duration=duration,
            created_by=created_by,
            status=MeetingStatus.SCHEDULED,
            location=location,
            virtual_link=f"{config.VIRTUAL_MEETING_BASE_URL}{meeting_id}" if virtual else None,
            attendees=list(attendees or []),
            agenda=list(agenda),
            decisions=[],
            objectives=objectives,
            patient_summary=patient_summary,
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            self._meetings[meeting.id] = meeting
        logger.info(f"Scheduled MDT meeting {meeting.id} for patient {meeting.patient_id}")
        return meeting

    def get_meeting(self, meeting_id: str) -> MDTMeeting:
        meeting = self._meetings.get(meeting_id)
        if meeting is None:
            raise NotFoundError(f"Meeting {meeting_id} not found", resource="meeting")
        return meeting

    def meetings_for_patient(self, patient_id: str) -> List[MDTMeeting]:
        return sorted(
            (m for m in self._meetings.values() if m.patient_id == patient_id),
            key=lambda m: m.scheduled_date,
        )

    # ── Lifecycle ────────────────────────────────────────────────────────────

    def _transition(self, meeting_id: str, target: MeetingStatus) -> MDTMeeting:
        meeting = self.get_meeting(meeting_id)
        if target not in MEETING_TRANSITIONS[meeting.status]:
            raise WorkflowStateError(
                f"Cannot move meeting {meeting_id} from {meeting.status.value} to {target.value}",
                current_state=meeting.status.value,
            )
        meeting.status = target
        meeting.updated_at = self._clock()
        logger.info(f"Meeting {meeting_id} → {target.value}")
        return meeting

    def start_meeting(self, meeting_id: str) -> MDTMeeting:
        with self._lock:
            return self._transition(meeting_id, MeetingStatus.IN_PROGRESS)

    def complete_meeting(
        self,
        meeting_id: str,
        minutes: Optional[str] = None,
        next_meeting_date: Optional[datetime] = None,
    ) -> MDTMeeting:
        with self._lock:
            meeting = self._transition(meeting_id, MeetingStatus.COMPLETED)
            if minutes:
                meeting.minutes = minutes
            meeting.next_meeting_date = next_meeting_date
            for item in meeting.agenda:
                item.completed = True
            return meeting

    def cancel_meeting(self, meeting_id: str, reason: str) -> MDTMeeting:
        if not reason or not reason.strip():
            raise PlanValidationError("A cancellation reason is required", field="reason")
        with self._lock:
            meeting = self._transition(meeting_id, MeetingStatus.CANCELLED)
            meeting.cancellation_reason = reason.strip()
            return meeting

    def record_decision(
        self,
        meeting_id: str,
        topic: str,
        decision: str,
        rationale: str = "",
        responsible: Optional[Sequence[str]] = None,
        priority: PriorityLevel = PriorityLevel.ROUTINE,
        deadline: Optional[datetime] = None,
    ) -> MDTDecision:
        """Decisions are only taken while the meeting is in progress."""
        if not topic or not decision:
            raise PlanValidationError("A decision needs a topic and a decision", field="decision")
        with self._lock:
            meeting = self.get_meeting(meeting_id)
            if meeting.status != MeetingStatus.IN_PROGRESS:
                raise WorkflowStateError(
                    f"Meeting {meeting_id} is {meeting.status.value}; decisions need an in-progress meeting",
                    current_state=meeting.status.value,
                )
            entry = MDTDecision(
                id=str(uuid.uuid4()),
                topic=topic,
                decision=decision,
                rationale=rationale,
                responsible=list(responsible or []),
                deadline=deadline,
                priority=priority,
            )
            meeting.decisions.append(entry)
            meeting.updated_at = self._clock()
        return entry

    # ── Invitations ──────────────────────────────────────────────────────────

    def invite_specialist(
        self,
        meeting_id: str,
        specialist: TeamMember,
        invited_by: str,
        message: Optional[str] = None,
    ) -> MeetingInvitation:
        """Invite a specialist to contribute; re-inviting returns the existing invitation."""
        with self._lock:
            meeting = self.get_meeting(meeting_id)
            if meeting.status not in _OPEN_MEETING_STATES:
                raise WorkflowStateError(
                    f"Meeting {meeting_id} is {meeting.status.value}; cannot invite",
                    current_state=meeting.status.value,
                )
            for existing in meeting.invitations:
                if existing.specialist.id == specialist.id:
                    return existing

            invitation = MeetingInvitation(
                id=str(uuid.uuid4()),
                meeting_id=meeting.id,
                patient_id=meeting.patient_id,
                specialist=specialist,
                invited_by=invited_by,
                message=message or (
                    f"You are invited to submit a {display_name(specialist.specialty)} "
                    f"treatment plan for {meeting.title}"
                ),
                created_at=self._clock(),
            )
            meeting.invitations.append(invitation)
            if all(a.id != specialist.id for a in meeting.attendees):
                meeting.attendees.append(specialist)
            meeting.updated_at = self._clock()
        logger.info(f"Invited {specialist.id} ({specialist.specialty.value}) to meeting {meeting_id}")
        return invitation

    def _find_invitation(self, invitation_id: str) -> MeetingInvitation:
        for meeting in self._meetings.values():
            for invitation in meeting.invitations:
                if invitation.id == invitation_id:
                    return invitation
        raise NotFoundError(f"Invitation {invitation_id} not found", resource="invitation")

    def acknowledge_invitation(self, invitation_id: str) -> MeetingInvitation:
        with self._lock:
            invitation = self._find_invitation(invitation_id)
            if invitation.status == InvitationStatus.PENDING:
                invitation.status = InvitationStatus.ACKNOWLEDGED
                invitation.acknowledged_at = self._clock()
            return invitation

    def mark_plan_submitted(self, meeting_id: str, specialist_id: str) -> Optional[MeetingInvitation]:
        """Close the specialist's invitation once their plan is in; None if never invited."""
        with self._lock:
            meeting = self.get_meeting(meeting_id)
            for invitation in meeting.invitations:
                if invitation.specialist.id == specialist_id:
                    invitation.status = InvitationStatus.PLAN_SUBMITTED
                    invitation.plan_submitted_at = self._clock()
                    return invitation
        return None

    def pending_invitations(self, specialist_id: str) -> List[MeetingInvitation]:
        return [
            inv
            for meeting in self._meetings.values()
            if meeting.status in _OPEN_MEETING_STATES
            for inv in meeting.invitations
            if inv.specialist.id == specialist_id and inv.status != InvitationStatus.PLAN_SUBMITTED
        ]
