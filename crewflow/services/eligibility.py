"""
Cleaner eligibility
Decides who the assignment cascade offers a job to next
"""

import logging
import math
from dataclasses import dataclass
from typing import Iterable, Optional, Protocol

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models import Cleaner, CleanerAssignment, Job

logger = logging.getLogger(__name__)

EARTH_RADIUS_MILES = 3958.8


def calculate_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Haversine distance in miles"""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_MILES * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


@dataclass
class Candidate:
    cleaner: Cleaner
    distance_miles: Optional[float] = None


class EligibilityResolver(Protocol):
    def next_candidate(
        self,
        db: Session,
        job: Job,
        excluded_ids: Iterable[int],
        candidate_ids: Optional[Iterable[int]] = None,
    ) -> Optional[Candidate]: ...


class NearestAvailableCleanerResolver:
    """
    Active cleaners of the job's tenant with capacity left on the job date,
    nearest first. Cleaners without a home location sort last, ties by id.
    """

    def _confirmed_load(self, db: Session, job: Job) -> dict[int, int]:
        if job.date is None:
            return {}
        rows = (
            db.query(CleanerAssignment.cleaner_id, func.count(CleanerAssignment.id))
            .join(Job, Job.id == CleanerAssignment.job_id)
            .filter(
                Job.date == job.date,
                Job.id != job.id,
                CleanerAssignment.status == "confirmed",
            )
            .group_by(CleanerAssignment.cleaner_id)
            .all()
        )
        return {cleaner_id: count for cleaner_id, count in rows}

    def next_candidate(
        self,
        db: Session,
        job: Job,
        excluded_ids: Iterable[int],
        candidate_ids: Optional[Iterable[int]] = None,
    ) -> Optional[Candidate]:
        excluded = set(excluded_ids)
        query = db.query(Cleaner).filter(Cleaner.active.is_(True), Cleaner.deleted_at.is_(None))
        if job.tenant_id:
            query = query.filter(Cleaner.tenant_id == job.tenant_id)
        if candidate_ids is not None:
            query = query.filter(Cleaner.id.in_(list(candidate_ids)))

        load = self._confirmed_load(db, job)
        ranked = []
        for cleaner in query.order_by(Cleaner.id).all():
            if cleaner.id in excluded:
                continue
            if load.get(cleaner.id, 0) >= (cleaner.max_jobs_per_day or 0):
                logger.debug(f"Cleaner {cleaner.id} at capacity on {job.date}")
                continue
            distance = None
            if None not in (job.lat, job.lng, cleaner.home_lat, cleaner.home_lng):
                distance = calculate_distance(cleaner.home_lat, cleaner.home_lng, job.lat, job.lng)
            ranked.append(Candidate(cleaner=cleaner, distance_miles=distance))

        if not ranked:
            return None

        ranked.sort(
            key=lambda c: (c.distance_miles is None, c.distance_miles or 0.0, c.cleaner.id)
        )
        best = ranked[0]
        if best.distance_miles is not None:
            logger.info(
                f"📍 Selected cleaner {best.cleaner.name} for job {job.id} "
                f"({best.distance_miles:.1f} mi)"
            )
        return best
