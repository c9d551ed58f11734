"""
Job repository for Firestore.

Jobs live in the top-level `jobs` collection keyed by job id.
"""

import logging
from typing import Any, Dict, Optional

from reelforge.core.firebase_client import get_firestore_client
from reelforge.core.repositories.exceptions import (
    ConflictError,
    JobRepositoryError,
    NotFoundError,
    ValidationError,
)
from reelforge.core.repositories.models import JobRecord, JobStage, JobStatus, utcnow

logger = logging.getLogger(__name__)

JOBS_COLLECTION = "jobs"

_UPDATABLE_FIELDS = {
    "stage",
    "status",
    "progress",
    "message",
    "error",
    "completed_at",
}


class JobRepository:
    """
    Repository for job documents.

    Only the pipeline orchestrator writes job state; the API reads it.
    """

    def __init__(self, db: Optional[Any] = None):
        self.db = db or get_firestore_client()
        self.collection = self.db.collection(JOBS_COLLECTION)

    def create(self, job: JobRecord) -> JobRecord:
        """
        Create a job document.

        Raises:
            ConflictError: If the job already exists.
            JobRepositoryError: If creation fails.
        """
        try:
            doc_ref = self.collection.document(job.id)
            if doc_ref.get().exists:
                raise ConflictError(f"Job {job.id} already exists")
            doc_ref.set(job.to_dict())
            logger.debug(f"Created job {job.id}")
            return job
        except ConflictError:
            raise
        except Exception as e:
            logger.error(f"Failed to create job {job.id}: {e}", exc_info=True)
            raise JobRepositoryError(f"Failed to create job: {e}") from e

    def get(self, job_id: str) -> JobRecord:
        """
        Load a job.

        Raises:
            NotFoundError: If the job does not exist.
            JobRepositoryError: If retrieval fails.
        """
        try:
            doc = self.collection.document(job_id).get()
        except Exception as e:
            logger.error(f"Failed to get job {job_id}: {e}", exc_info=True)
            raise JobRepositoryError(f"Failed to get job: {e}") from e

        data = doc.to_dict() if doc.exists else None
        if not data:
            raise NotFoundError(f"Job {job_id} not found")
        return JobRecord.from_dict(data)

    def update(self, job_id: str, fields: Dict[str, Any]) -> None:
        """
        Update mutable job state fields.

        Raises:
            ValidationError: If a field is not updatable.
            JobRepositoryError: If the update fails.
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Fields not updatable: {sorted(unknown)}")

        data: Dict[str, Any] = {}
        for key, value in fields.items():
            if isinstance(value, (JobStage, JobStatus)):
                value = value.value
            data[key] = value
        data["updated_at"] = utcnow()

        try:
            self.collection.document(job_id).update(data)
        except Exception as e:
            logger.error(f"Failed to update job {job_id}: {e}", exc_info=True)
            raise JobRepositoryError(f"Failed to update job: {e}") from e
