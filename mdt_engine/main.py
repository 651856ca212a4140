"""
MDT Care Plan Engine - FastAPI Application

API endpoints for:
- MDT meeting scheduling, lifecycle and invitations
- Specialty treatment plan submission and review
- Care plan harmonization, approval and activation
"""
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from mdt_engine import __version__
from mdt_engine.core.careplan.specialties import SPECIALTY_DEFINITIONS
from mdt_engine.models.api import (
    CarePlanActivateRequest,
    CarePlanApproveRequest,
    ConflictResolveRequest,
    DecisionRequest,
    HarmonizeRequest,
    HealthResponse,
    InvitationRequest,
    MeetingCancelRequest,
    MeetingCompleteRequest,
    MeetingCreateRequest,
    PlanActorRequest,
    PlanApproveRequest,
    PlanCreateRequest,
    PlanRejectRequest,
    PlanResubmitRequest,
    PlanRevisionRequest,
)
from mdt_engine.services import MDTService
from mdt_engine.utils import get_logger, MDTEngineError

logger = get_logger(__name__)

# Error code → HTTP status
_STATUS_BY_CODE = {
    "VALIDATION_ERROR": 422,
    "INSUFFICIENT_INPUT": 422,
    "AUTHORIZATION_ERROR": 403,
    "NOT_FOUND": 404,
    "VERSION_CONFLICT": 409,
    "INVALID_TRANSITION": 409,
}


# ---- Service Singleton ----
_mdt_service = MDTService()


# ---- Application Lifespan ----

@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.mdt_service = _mdt_service
    logger.info("API ready to accept requests")
    yield
    logger.info("MDT Care Plan API shut down.")


# ---- FastAPI Application ----

app = FastAPI(
    title="MDT Care Plan API",
    description="Multidisciplinary treatment-plan harmonization and approval",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

START_TIME = datetime.now()


@app.exception_handler(MDTEngineError)
async def mdt_error_handler(request: Request, exc: MDTEngineError):
    status_code = _STATUS_BY_CODE.get(exc.code, 400)
    if status_code >= 409:
        logger.warning(f"{request.method} {request.url.path} → {status_code} {exc.code}: {exc.message}")
    return JSONResponse(status_code=status_code, content=exc.to_dict())


def _health() -> HealthResponse:
    return HealthResponse(
        status="healthy",
        version=__version__,
        timestamp=datetime.now().isoformat(),
        uptime_seconds=(datetime.now() - START_TIME).total_seconds(),
    )


# ---- API Endpoints ----

@app.get("/", response_model=HealthResponse, tags=["Health"])
async def root():
    """API root - health check."""
    return _health()


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Health check endpoint."""
    return _health()


@app.get("/api/v1/specialties", tags=["Reference"])
async def list_specialties():
    """List specialties that may contribute plans."""
    return {
        "specialties": [
            {"id": s.value, "name": d.name, "default_roles": list(d.default_roles)}
            for s, d in SPECIALTY_DEFINITIONS.items()
        ]
    }


# ---- Meetings ----

@app.post("/api/v1/meetings", tags=["Meetings"])
async def create_meeting(request: MeetingCreateRequest):
    meeting = _mdt_service.create_meeting(
        request.patient_id,
        request.title,
        request.scheduled_date,
        request.duration,
        [a.to_domain() for a in request.attendees],
        request.created_by,
        location=request.location,
        virtual=request.virtual,
        objectives=request.objectives,
        patient_summary=request.patient_summary,
    )
    return meeting.to_dict()


@app.get("/api/v1/meetings/{meeting_id}", tags=["Meetings"])
async def get_meeting(meeting_id: str):
    return _mdt_service.get_meeting(meeting_id).to_dict()


@app.post("/api/v1/meetings/{meeting_id}/start", tags=["Meetings"])
async def start_meeting(meeting_id: str):
    return _mdt_service.meetings.start_meeting(meeting_id).to_dict()


@app.post("/api/v1/meetings/{meeting_id}/complete", tags=["Meetings"])
async def complete_meeting(meeting_id: str, request: MeetingCompleteRequest):
    meeting = _mdt_service.meetings.complete_meeting(
        meeting_id, request.minutes, request.next_meeting_date,
    )
    return meeting.to_dict()


@app.post("/api/v1/meetings/{meeting_id}/cancel", tags=["Meetings"])
async def cancel_meeting(meeting_id: str, request: MeetingCancelRequest):
    return _mdt_service.meetings.cancel_meeting(meeting_id, request.reason).to_dict()


@app.post("/api/v1/meetings/{meeting_id}/decisions", tags=["Meetings"])
async def record_decision(meeting_id: str, request: DecisionRequest):
    decision = _mdt_service.meetings.record_decision(
        meeting_id,
        request.topic,
        request.decision,
        request.rationale,
        request.responsible,
        request.priority,
        request.deadline,
    )
    return decision.to_dict()


@app.post("/api/v1/meetings/{meeting_id}/invitations", tags=["Meetings"])
async def invite_specialist(meeting_id: str, request: InvitationRequest):
    invitation = _mdt_service.meetings.invite_specialist(
        meeting_id, request.specialist.to_domain(), request.invited_by, request.message,
    )
    return invitation.to_dict()


@app.post("/api/v1/invitations/{invitation_id}/acknowledge", tags=["Meetings"])
async def acknowledge_invitation(invitation_id: str):
    return _mdt_service.meetings.acknowledge_invitation(invitation_id).to_dict()


@app.get("/api/v1/meetings/{meeting_id}/summary", tags=["Meetings"])
async def meeting_summary(meeting_id: str):
    return {"meeting_id": meeting_id, "summary": _mdt_service.generate_meeting_summary(meeting_id)}


# ---- Specialty plans ----

@app.post("/api/v1/plans", tags=["Specialty Plans"])
async def create_plan(request: PlanCreateRequest):
    submitter = request.submitted_by.to_domain()
    plan = _mdt_service.create_specialty_plan(
        request.patient_id,
        request.specialty,
        submitter,
        meeting_id=request.meeting_id,
        **request.content_kwargs(),
    )
    if request.submit:
        plan = _mdt_service.submit_specialty_plan(plan.id, submitter)
    return plan.to_dict()


@app.get("/api/v1/plans/pending", tags=["Specialty Plans"])
async def pending_plans(consultant_id: str, patient_id: Optional[str] = Query(default=None)):
    plans = _mdt_service.get_pending_approvals(consultant_id, patient_id)
    return {"count": len(plans), "plans": [p.to_dict() for p in plans]}


@app.get("/api/v1/plans/{plan_id}", tags=["Specialty Plans"])
async def get_plan(plan_id: str):
    return _mdt_service.registry.get(plan_id).to_dict()


@app.post("/api/v1/plans/{plan_id}/submit", tags=["Specialty Plans"])
async def submit_plan(plan_id: str, request: PlanActorRequest):
    return _mdt_service.submit_specialty_plan(plan_id, request.actor.to_domain()).to_dict()


@app.post("/api/v1/plans/{plan_id}/approve", tags=["Specialty Plans"])
async def approve_plan(plan_id: str, request: PlanApproveRequest):
    plan = _mdt_service.approve_specialty_plan(
        plan_id, request.reviewer.to_domain(), request.expected_revision,
    )
    return plan.to_dict()


@app.post("/api/v1/plans/{plan_id}/reject", tags=["Specialty Plans"])
async def reject_plan(plan_id: str, request: PlanRejectRequest):
    plan = _mdt_service.reject_specialty_plan(
        plan_id, request.reviewer.to_domain(), request.reason, request.expected_revision,
    )
    return plan.to_dict()


@app.post("/api/v1/plans/{plan_id}/revision", tags=["Specialty Plans"])
async def request_plan_revision(plan_id: str, request: PlanRevisionRequest):
    reviewer = request.reviewer.to_domain() if request.reviewer else None
    plan = _mdt_service.request_revision(plan_id, request.notes, request.expected_revision, reviewer)
    return plan.to_dict()


@app.post("/api/v1/plans/{plan_id}/resubmit", tags=["Specialty Plans"])
async def resubmit_plan(plan_id: str, request: PlanResubmitRequest):
    changes = request.content_kwargs()
    fields_set = request.model_fields_set - {"actor"}
    plan = _mdt_service.resubmit_specialty_plan(
        plan_id,
        request.actor.to_domain(),
        **{k: v for k, v in changes.items() if k in fields_set},
    )
    return plan.to_dict()


# ---- Care plans ----

@app.post("/api/v1/care-plans/harmonize", tags=["Care Plans"])
async def harmonize(request: HarmonizeRequest):
    care_plan = _mdt_service.harmonize(
        request.patient_id, request.meeting_id, request.primary_consultant.to_domain(),
    )
    return care_plan.to_dict()


@app.get("/api/v1/care-plans/{care_plan_id}", tags=["Care Plans"])
async def get_care_plan(care_plan_id: str):
    return _mdt_service.get_care_plan(care_plan_id).to_dict()


@app.post("/api/v1/care-plans/{care_plan_id}/approve", tags=["Care Plans"])
async def approve_care_plan(care_plan_id: str, request: CarePlanApproveRequest):
    care_plan = _mdt_service.approve_care_plan(
        care_plan_id, request.approver.to_domain(), request.comments, request.expected_revision,
    )
    return care_plan.to_dict()


@app.post("/api/v1/care-plans/{care_plan_id}/activate", tags=["Care Plans"])
async def activate_care_plan(care_plan_id: str, request: CarePlanActivateRequest):
    care_plan = _mdt_service.activate_care_plan(
        care_plan_id, request.actor.to_domain(), request.expected_revision,
    )
    return care_plan.to_dict()


@app.post("/api/v1/care-plans/{care_plan_id}/conflicts/{conflict_id}/resolve", tags=["Care Plans"])
async def resolve_conflict(care_plan_id: str, conflict_id: str, request: ConflictResolveRequest):
    care_plan = _mdt_service.resolve_conflict(
        care_plan_id, conflict_id, request.resolution,
        request.resolved_by.to_domain(), request.expected_revision,
    )
    return care_plan.to_dict()


@app.get("/api/v1/care-plans/{care_plan_id}/workload", tags=["Care Plans"])
async def team_workload(care_plan_id: str) -> Dict[str, Any]:
    workload = _mdt_service.calculate_team_workload(care_plan_id)
    return {"care_plan_id": care_plan_id, "workload": {s.value: n for s, n in workload.items()}}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
