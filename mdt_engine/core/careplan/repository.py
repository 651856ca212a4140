"""
Care Plan Repository

Version-stamped store of harmonized care plans, keyed by
``(patient_id, meeting_id, version)``.

Two counters are compared:
  - ``version`` — a new harmonization must be exactly one past the latest
    stored version; storing it supersedes the previous one.
  - ``revision`` — every write to an existing version must be based on the
    revision currently stored.
A stale write raises ``VersionConflictError``; the caller re-reads and
retries.
"""
from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple

from mdt_engine.utils import get_logger, NotFoundError, VersionConflictError
from .base import CarePlanState, HarmonizedCarePlan
from .workflow import supersede_care_plan

logger = get_logger(__name__)

StreamKey = Tuple[str, str]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CarePlanRepository:
    """In-memory arena of care plan versions with an index per patient/meeting."""

    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        self._clock = clock
        self._versions: Dict[StreamKey, Dict[int, HarmonizedCarePlan]] = {}
        self._by_id: Dict[str, Tuple[str, str, int]] = {}
        self._lock = threading.Lock()

    def next_version(self, patient_id: str, meeting_id: str) -> int:
        versions = self._versions.get((patient_id, meeting_id), {})
        return max(versions, default=0) + 1

    def add_version(self, plan: HarmonizedCarePlan) -> HarmonizedCarePlan:
        """
        Store a freshly harmonized plan and supersede the version before it.

        Raises:
            VersionConflictError: another harmonization already took this
                version number.
        """
        key = (plan.patient_id, plan.meeting_id)
        with self._lock:
            versions = self._versions.setdefault(key, {})
            latest = max(versions, default=0)
            if plan.version != latest + 1:
                raise VersionConflictError(
                    f"Care plan for {plan.patient_id}/{plan.meeting_id} is at version "
                    f"{latest}; cannot store version {plan.version}",
                    expected=plan.version - 1,
                    actual=latest,
                )
            if latest:
                previous = versions[latest]
                if previous.status != CarePlanState.SUPERSEDED:
                    versions[latest] = supersede_care_plan(previous, now=self._clock())
                    logger.info(
                        f"Care plan {previous.id} v{latest} superseded by v{plan.version}"
                    )
            versions[plan.version] = plan
            self._by_id[plan.id] = (plan.patient_id, plan.meeting_id, plan.version)
        return plan

    def update(self, plan: HarmonizedCarePlan, expected_revision: int) -> HarmonizedCarePlan:
        """
        Replace a stored version if nobody wrote to it since ``expected_revision``.

        Superseded versions are read-only.
        """
        key = (plan.patient_id, plan.meeting_id)
        with self._lock:
            current = self._versions.get(key, {}).get(plan.version)
            if current is None:
                raise NotFoundError(
                    f"Care plan {plan.patient_id}/{plan.meeting_id} v{plan.version} not found",
                    resource="care_plan",
                )
            if current.status == CarePlanState.SUPERSEDED:
                raise VersionConflictError(
                    f"Care plan v{plan.version} has been superseded",
                    expected=expected_revision,
                    actual=current.revision,
                    details={"care_plan_id": plan.id},
                )
            if current.revision != expected_revision:
                raise VersionConflictError(
                    f"Care plan v{plan.version} is at revision {current.revision}, "
                    f"write was based on {expected_revision}",
                    expected=expected_revision,
                    actual=current.revision,
                    details={"care_plan_id": plan.id},
                )
            self._versions[key][plan.version] = plan
        return plan

    def get(self, patient_id: str, meeting_id: str, version: Optional[int] = None) -> HarmonizedCarePlan:
        """The requested version, or the latest when ``version`` is None."""
        versions = self._versions.get((patient_id, meeting_id), {})
        if not versions:
            raise NotFoundError(f"No care plan for {patient_id}/{meeting_id}", resource="care_plan")
        number = max(versions) if version is None else version
        if number not in versions:
            raise NotFoundError(
                f"Care plan {patient_id}/{meeting_id} v{number} not found",
                resource="care_plan",
            )
        return versions[number]

    def get_by_id(self, care_plan_id: str) -> HarmonizedCarePlan:
        location = self._by_id.get(care_plan_id)
        if location is None:
            raise NotFoundError(f"Care plan {care_plan_id} not found", resource="care_plan")
        patient_id, meeting_id, version = location
        return self._versions[(patient_id, meeting_id)][version]

    def history(self, patient_id: str, meeting_id: str) -> List[HarmonizedCarePlan]:
        versions = self._versions.get((patient_id, meeting_id), {})
        return [versions[v] for v in sorted(versions)]
