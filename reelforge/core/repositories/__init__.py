"""
Repository package for job and clip metadata.
"""

from reelforge.core.repositories.clips import ClipRepository
from reelforge.core.repositories.exceptions import (
    ClipRepositoryError,
    ConflictError,
    JobRepositoryError,
    NotFoundError,
    RepositoryError,
    ValidationError,
)
from reelforge.core.repositories.jobs import JobRepository
from reelforge.core.repositories.models import ClipRecord, JobRecord, JobStage, JobStatus

__all__ = [
    "ClipRecord",
    "ClipRepository",
    "ClipRepositoryError",
    "ConflictError",
    "JobRecord",
    "JobRepository",
    "JobRepositoryError",
    "JobStage",
    "JobStatus",
    "NotFoundError",
    "RepositoryError",
    "ValidationError",
]
