"""
Integration Tests for the FastAPI Backend

Tests for API endpoints: health, meetings, specialty plans and care plans.
Uses async httpx for ASGI app testing.
"""
import pytest
import httpx
from typing import Any, Dict

from mdt_engine.main import app

SURGEON = {"id": "api-surgeon", "name": "Dr. Okafor", "specialty": "surgery"}
REGISTRAR = {"id": "api-registrar", "name": "Dr. Lind", "specialty": "surgery"}
NURSE = {"id": "api-nurse", "name": "Sister Patel", "specialty": "nursing"}
PHYSICIAN = {"id": "api-physician", "name": "Dr. Haddad", "specialty": "medicine"}
PRIMARY = {"id": "api-primary", "name": "Dr. Moreau", "specialty": "medicine",
           "is_primary_consultant": True}


@pytest.fixture
async def async_client():
    """Create async test client."""
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://test"
    ) as client:
        yield client


async def _create_meeting(client, patient_id: str) -> Dict[str, Any]:
    response = await client.post("/api/v1/meetings", json={
        "patient_id": patient_id,
        "title": "Post-op review",
        "scheduled_date": "2024-03-04T14:00:00+00:00",
        "attendees": [SURGEON, NURSE],
        "created_by": PRIMARY["id"],
        "objectives": "Agree wound management",
    })
    assert response.status_code == 200
    return response.json()


async def _submit_plan(client, patient_id: str, meeting_id: str, member: Dict[str, Any],
                       **content) -> Dict[str, Any]:
    response = await client.post("/api/v1/plans", json={
        "patient_id": patient_id,
        "meeting_id": meeting_id,
        "specialty": member["specialty"],
        "submitted_by": member,
        "submit": True,
        **content,
    })
    assert response.status_code == 200, response.text
    return response.json()


async def _wound_care_meeting(client, patient_id: str) -> Dict[str, Any]:
    meeting = await _create_meeting(client, patient_id)
    await _submit_plan(
        client, patient_id, meeting["id"], SURGEON,
        diagnosis=["cellulitis"],
        recommendations=[{"category": "Wound Care", "description": "Wet-to-dry dressing",
                          "frequency": "BD"}],
        medications=[{"action": "continue", "medication_name": "Warfarin", "dose": "5mg"}],
    )
    await _submit_plan(
        client, patient_id, meeting["id"], NURSE,
        diagnosis=["Cellulitis", "diabetes"],
        recommendations=[{"category": "wound care", "description": "Hydrocolloid dressing",
                          "frequency": "TDS"}],
        medications=[{"action": "add", "medication_name": "Aspirin", "dose": "75mg"}],
    )
    return meeting


@pytest.mark.asyncio
class TestHealthEndpoints:
    """Tests for health check endpoints."""

    async def test_root_endpoint(self, async_client):
        response = await async_client.get("/")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "healthy"
        assert "version" in data

    async def test_health_endpoint(self, async_client):
        response = await async_client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    async def test_list_specialties(self, async_client):
        response = await async_client.get("/api/v1/specialties")
        assert response.status_code == 200

        specialties = {s["id"]: s for s in response.json()["specialties"]}
        assert specialties["medicine"]["name"] == "Internal Medicine"
        assert len(specialties) == 15


@pytest.mark.asyncio
class TestMeetingEndpoints:
    """Tests for meeting lifecycle endpoints."""

    async def test_create_and_get_meeting(self, async_client):
        meeting = await _create_meeting(async_client, "API-M-001")
        assert meeting["status"] == "scheduled"
        assert len(meeting["agenda"]) == 4

        response = await async_client.get(f"/api/v1/meetings/{meeting['id']}")
        assert response.status_code == 200
        assert response.json()["id"] == meeting["id"]

    async def test_unknown_meeting_404(self, async_client):
        response = await async_client.get("/api/v1/meetings/does-not-exist")
        assert response.status_code == 404
        assert response.json()["error"] == "NOT_FOUND"

    async def test_lifecycle_and_summary(self, async_client):
        meeting = await _create_meeting(async_client, "API-M-002")
        meeting_id = meeting["id"]

        response = await async_client.post(f"/api/v1/meetings/{meeting_id}/decisions", json={
            "topic": "Wound care", "decision": "TDS dressings",
        })
        assert response.status_code == 409

        assert (await async_client.post(f"/api/v1/meetings/{meeting_id}/start")).status_code == 200
        response = await async_client.post(f"/api/v1/meetings/{meeting_id}/decisions", json={
            "topic": "Wound care", "decision": "TDS dressings", "priority": "urgent",
        })
        assert response.status_code == 200

        response = await async_client.post(f"/api/v1/meetings/{meeting_id}/complete", json={
            "minutes": "Plan agreed",
        })
        assert response.json()["status"] == "completed"

        response = await async_client.get(f"/api/v1/meetings/{meeting_id}/summary")
        summary = response.json()["summary"]
        assert summary.startswith("MDT MEETING SUMMARY")
        assert "- Wound care: TDS dressings" in summary

    async def test_cancel_requires_reason(self, async_client):
        meeting = await _create_meeting(async_client, "API-M-003")
        response = await async_client.post(f"/api/v1/meetings/{meeting['id']}/cancel", json={"reason": ""})
        assert response.status_code == 422

    async def test_invitation_flow(self, async_client):
        meeting = await _create_meeting(async_client, "API-M-004")
        response = await async_client.post(f"/api/v1/meetings/{meeting['id']}/invitations", json={
            "specialist": PHYSICIAN, "invited_by": PRIMARY["id"],
        })
        assert response.status_code == 200
        invitation = response.json()
        assert invitation["status"] == "pending"

        response = await async_client.post(f"/api/v1/invitations/{invitation['id']}/acknowledge")
        assert response.json()["status"] == "acknowledged"


@pytest.mark.asyncio
class TestPlanEndpoints:
    """Tests for specialty plan submission and review."""

    async def test_create_draft_then_submit(self, async_client):
        meeting = await _create_meeting(async_client, "API-P-001")
        response = await async_client.post("/api/v1/plans", json={
            "patient_id": "API-P-001", "meeting_id": meeting["id"],
            "specialty": "surgery", "submitted_by": SURGEON,
        })
        plan = response.json()
        assert plan["status"] == "draft"
        assert plan["approval_status"] == "pending"

        response = await async_client.post(f"/api/v1/plans/{plan['id']}/submit", json={"actor": SURGEON})
        assert response.json()["status"] == "submitted"

    async def test_specialty_mismatch_422(self, async_client):
        response = await async_client.post("/api/v1/plans", json={
            "patient_id": "API-P-002", "specialty": "nursing", "submitted_by": SURGEON,
        })
        assert response.status_code == 422
        assert response.json()["error"] == "VALIDATION_ERROR"

    async def test_approve_and_self_review(self, async_client):
        meeting = await _create_meeting(async_client, "API-P-003")
        plan = await _submit_plan(async_client, "API-P-003", meeting["id"], SURGEON)

        response = await async_client.post(f"/api/v1/plans/{plan['id']}/approve", json={"reviewer": SURGEON})
        assert response.status_code == 403

        response = await async_client.post(f"/api/v1/plans/{plan['id']}/approve", json={
            "reviewer": REGISTRAR, "expected_revision": 0,
        })
        assert response.status_code == 409

        response = await async_client.post(f"/api/v1/plans/{plan['id']}/approve", json={
            "reviewer": REGISTRAR, "expected_revision": plan["revision"],
        })
        assert response.status_code == 200
        assert response.json()["approval_status"] == "approved"

    async def test_reject_and_resubmit(self, async_client):
        meeting = await _create_meeting(async_client, "API-P-004")
        plan = await _submit_plan(async_client, "API-P-004", meeting["id"], NURSE,
                                  clinical_findings="Erythema to left shin")

        response = await async_client.post(f"/api/v1/plans/{plan['id']}/reject", json={
            "reviewer": PRIMARY, "reason": "Specify dressing product",
        })
        assert response.json()["approval_status"] == "rejected"

        response = await async_client.post(f"/api/v1/plans/{plan['id']}/resubmit", json={
            "actor": NURSE, "special_notes": "Aquacel Ag",
        })
        fresh = response.json()
        assert fresh["supersedes"] == plan["id"]
        assert fresh["clinical_findings"] == "Erythema to left shin"
        assert fresh["special_notes"] == "Aquacel Ag"

        old = (await async_client.get(f"/api/v1/plans/{plan['id']}")).json()
        assert old["status"] == "superseded"

    async def test_reject_own_plan_403(self, async_client):
        meeting = await _create_meeting(async_client, "API-P-006")
        plan = await _submit_plan(async_client, "API-P-006", meeting["id"], NURSE)

        response = await async_client.post(f"/api/v1/plans/{plan['id']}/reject", json={
            "reviewer": NURSE, "reason": "Withdrawn",
        })
        assert response.status_code == 403
        assert response.json()["error"] == "AUTHORIZATION_ERROR"

        response = await async_client.post(f"/api/v1/plans/{plan['id']}/revision", json={
            "notes": "Add pressure care", "reviewer": SURGEON,
        })
        assert response.status_code == 403

    async def test_pending_for_consultant(self, async_client):
        meeting = await _create_meeting(async_client, "API-P-005")
        await _submit_plan(async_client, "API-P-005", meeting["id"], SURGEON)
        await _submit_plan(async_client, "API-P-005", meeting["id"], NURSE)

        response = await async_client.get("/api/v1/plans/pending", params={
            "consultant_id": SURGEON["id"], "patient_id": "API-P-005",
        })
        data = response.json()
        assert data["count"] == 1
        assert data["plans"][0]["specialty"] == "nursing"


@pytest.mark.asyncio
class TestCarePlanEndpoints:
    """Tests for harmonization and the approval chain."""

    async def test_harmonize_and_approve(self, async_client):
        meeting = await _wound_care_meeting(async_client, "API-C-001")

        response = await async_client.post("/api/v1/care-plans/harmonize", json={
            "patient_id": "API-C-001", "meeting_id": meeting["id"], "primary_consultant": PRIMARY,
        })
        assert response.status_code == 200
        care_plan = response.json()
        assert care_plan["status"] == "draft"
        assert care_plan["primary_diagnosis"] == "cellulitis"
        assert care_plan["secondary_diagnoses"] == ["diabetes"]

        conflict = care_plan["treatment_plans"][0]["conflicts"][0]
        assert conflict["conflicting_specialties"] == ["surgery", "nursing"]
        assert conflict["resolved"] is False

        warfarin = care_plan["reconciled_medications"][0]
        assert warfarin["medication_name"] == "Warfarin"
        assert [i["severity"] for i in warfarin["interactions"]] == ["major"]

        care_plan_id = care_plan["id"]
        response = await async_client.post(f"/api/v1/care-plans/{care_plan_id}/approve",
                                           json={"approver": PHYSICIAN})
        assert response.status_code == 403

        response = await async_client.post(f"/api/v1/care-plans/{care_plan_id}/approve", json={
            "approver": SURGEON, "expected_revision": care_plan["revision"],
        })
        assert response.json()["status"] == "pending_approval"
        assert response.json()["final_approval"] is None

        response = await async_client.post(f"/api/v1/care-plans/{care_plan_id}/approve",
                                           json={"approver": PRIMARY, "comments": "Agreed"})
        approved = response.json()
        assert approved["status"] == "approved"
        assert approved["final_approval"]["approved_by"] == PRIMARY["id"]
        assert len(approved["approvals"]) == 2

        response = await async_client.post(f"/api/v1/care-plans/{care_plan_id}/activate",
                                           json={"actor": PRIMARY})
        assert response.json()["status"] == "active"

        response = await async_client.get(f"/api/v1/care-plans/{care_plan_id}/workload")
        assert response.json()["workload"] == {"surgery": 1}

    async def test_resolve_conflict(self, async_client):
        meeting = await _wound_care_meeting(async_client, "API-C-002")
        care_plan = (await async_client.post("/api/v1/care-plans/harmonize", json={
            "patient_id": "API-C-002", "meeting_id": meeting["id"], "primary_consultant": PRIMARY,
        })).json()
        conflict_id = care_plan["treatment_plans"][0]["conflicts"][0]["id"]

        response = await async_client.post(
            f"/api/v1/care-plans/{care_plan['id']}/conflicts/{conflict_id}/resolve",
            json={"resolution": "TDS until exudate settles", "resolved_by": NURSE},
        )
        assert response.status_code == 200
        assert response.json()["treatment_plans"][0]["conflicts"][0]["resolved"] is True

    async def test_single_plan_422(self, async_client):
        meeting = await _create_meeting(async_client, "API-C-003")
        await _submit_plan(async_client, "API-C-003", meeting["id"], SURGEON)

        response = await async_client.post("/api/v1/care-plans/harmonize", json={
            "patient_id": "API-C-003", "meeting_id": meeting["id"], "primary_consultant": PRIMARY,
        })
        assert response.status_code == 422
        assert response.json()["error"] == "INSUFFICIENT_INPUT"
