"""
Firestore client bootstrap.

The firebase_admin app is initialized on first use. A service-account file
is used when FIREBASE_CREDENTIALS_PATH is set; otherwise the application
default credentials of the host are used.
"""

import logging
from pathlib import Path
from typing import Optional

import firebase_admin
from firebase_admin import credentials, firestore

from reelforge.config import FIREBASE_CREDENTIALS_PATH, FIREBASE_PROJECT_ID, PROJECT_ROOT

logger = logging.getLogger(__name__)

_db: Optional[firestore.Client] = None


def _resolve_credentials_file(raw_path: str) -> Path:
    path = Path(raw_path)
    candidates = [path] if path.is_absolute() else [PROJECT_ROOT / path, Path.cwd() / path]
    for candidate in candidates:
        if candidate.is_file():
            return candidate.resolve()
    tried = ", ".join(str(c) for c in candidates)
    raise FileNotFoundError(f"Firebase credentials file not found (tried {tried})")


def _build_credentials():
    if FIREBASE_CREDENTIALS_PATH:
        return credentials.Certificate(str(_resolve_credentials_file(FIREBASE_CREDENTIALS_PATH)))
    return credentials.ApplicationDefault()


def get_firestore_client() -> firestore.Client:
    """Return the shared Firestore client, initializing Firebase if needed."""
    global _db
    if _db is not None:
        return _db

    if not FIREBASE_PROJECT_ID:
        raise RuntimeError("FIREBASE_PROJECT_ID must be configured")

    try:
        app = firebase_admin.get_app()
    except ValueError:
        app = firebase_admin.initialize_app(_build_credentials(), {"projectId": FIREBASE_PROJECT_ID})
        logger.info(f"Firebase initialized for project {FIREBASE_PROJECT_ID}")

    _db = firestore.client(app)
    return _db
