"""Firebase Admin wiring: app initialization, Firestore async client, and ID-token verification."""
import json
import logging
from typing import Any, Optional

import firebase_admin
from firebase_admin import auth, credentials, firestore_async

from app.core.config import Settings

logger = logging.getLogger(__name__)


def initialize_firebase(cfg: Settings) -> firebase_admin.App:
    """Initialize (or reuse) the default Firebase app from SERVICE_ACCOUNT_JSON, falling back to application default credentials.
    Why available: Called once by the entry point; the resulting app backs both Firestore and token verification."""
    if firebase_admin._apps:
        return firebase_admin.get_app()

    options = {"projectId": cfg.firebase_project_id} if cfg.firebase_project_id else None
    if cfg.service_account_json:
        try:
            info = json.loads(cfg.service_account_json)
        except json.JSONDecodeError as e:
            raise ValueError("SERVICE_ACCOUNT_JSON is not valid JSON") from e
        app = firebase_admin.initialize_app(credentials.Certificate(info), options)
    else:
        app = firebase_admin.initialize_app(options=options)
    logger.info("Firebase Admin SDK initialized (project=%s)", cfg.firebase_project_id or "default")
    return app


def get_firestore_client(app: firebase_admin.App):
    """Return the google-cloud-firestore AsyncClient bound to app."""
    return firestore_async.client(app)


def shutdown_firebase(app: Optional[firebase_admin.App]) -> None:
    if app is not None:
        firebase_admin.delete_app(app)


def verify_id_token(id_token: str) -> dict[str, Any]:
    """Verify a Firebase ID token and return its decoded claims. Raises on invalid or expired tokens."""
    return auth.verify_id_token(id_token)
