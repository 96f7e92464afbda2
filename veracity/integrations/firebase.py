"""
Firebase integration.

`initialize()` is called once inside the FastAPI lifespan; the returned
Firestore client is stored on `app.state.db` and injected into repositories.
"""

import json
import logging

import firebase_admin
from firebase_admin import credentials, firestore

from veracity.config import Settings

logger = logging.getLogger(__name__)


def initialize(settings: Settings):
    """Initialize the Firebase Admin SDK and return a Firestore client."""
    if not firebase_admin._apps:
        if settings.firebase_service_account:
            try:
                sa_info = json.loads(settings.firebase_service_account)
                cred = credentials.Certificate(sa_info)
                firebase_admin.initialize_app(cred)
            except Exception as e:
                logger.error(f"Error initializing Firebase with service account: {e}")
                firebase_admin.initialize_app()
        else:
            firebase_admin.initialize_app()

    db = firestore.client()
    logger.info("[STARTUP] Firebase initialized")
    return db
