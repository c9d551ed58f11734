"""
Clip repository for Firestore.

Clips are stored in the `clips` subcollection of their job document.
"""

import logging
from typing import Any, List, Optional

from reelforge.core.firebase_client import get_firestore_client
from reelforge.core.repositories.exceptions import ClipRepositoryError, ValidationError
from reelforge.core.repositories.jobs import JOBS_COLLECTION
from reelforge.core.repositories.models import ClipRecord, utcnow

logger = logging.getLogger(__name__)


class ClipRepository:
    """Repository for clip documents."""

    def __init__(self, db: Optional[Any] = None):
        self.db = db or get_firestore_client()

    def _clips(self, job_id: str):
        if not job_id or len(job_id) > 100:
            raise ValidationError("Invalid job_id")
        return self.db.collection(JOBS_COLLECTION).document(job_id).collection("clips")

    def upsert(self, clip: ClipRecord) -> ClipRecord:
        """
        Create or replace a clip document.

        Raises:
            ClipRepositoryError: If the write fails.
        """
        clip = clip.model_copy(update={"updated_at": utcnow()})
        try:
            self._clips(clip.job_id).document(clip.id).set(clip.to_dict(), merge=True)
            logger.debug(f"Upserted clip {clip.id} for job {clip.job_id}")
            return clip
        except ValidationError:
            raise
        except Exception as e:
            logger.error(f"Failed to upsert clip {clip.id}: {e}", exc_info=True)
            raise ClipRepositoryError(f"Failed to upsert clip: {e}") from e

    def get(self, job_id: str, clip_id: str) -> Optional[ClipRecord]:
        """Return a clip or None if it does not exist."""
        try:
            doc = self._clips(job_id).document(clip_id).get()
            if doc.exists:
                data = doc.to_dict()
                if data:
                    return ClipRecord.from_dict(data)
            return None
        except ValidationError:
            raise
        except Exception as e:
            logger.error(f"Failed to get clip {clip_id}: {e}", exc_info=True)
            raise ClipRepositoryError(f"Failed to get clip: {e}") from e

    def list_by_job(self, job_id: str) -> List[ClipRecord]:
        """Return the clips of a job ordered by index."""
        try:
            docs = self._clips(job_id).order_by("index").stream()
            clips: List[ClipRecord] = []
            for doc in docs:
                data = doc.to_dict()
                if data:
                    clips.append(ClipRecord.from_dict(data))
            return clips
        except ValidationError:
            raise
        except Exception as e:
            logger.error(f"Failed to list clips for job {job_id}: {e}", exc_info=True)
            raise ClipRepositoryError(f"Failed to list clips: {e}") from e
