import os
import json
import logging
import firebase_admin
from firebase_admin import credentials

from app.core.settings import settings

logger = logging.getLogger("app.config")


def _initialize(cred) -> None:
    # httpTimeout bounds every FCM call so a slow provider cannot stall a poll cycle
    firebase_admin.initialize_app(cred, {"httpTimeout": settings.push_http_timeout})


def init_firebase():
    """Initialize Firebase admin SDK.

    Behavior:
    - If FIREBASE_CERT_JSON env var is present, parse it as JSON and use it.
    - Else if FIREBASE_CERT_PATH env var is set or file 'firebase_key.json' exists, use that path.
    - Else, do nothing (avoid raising at import time); push sends then report
      the gateway as not configured.
    """
    try:
        firebase_admin.get_app()
        return
    except ValueError:
        pass

    fb_json = os.environ.get("FIREBASE_CERT_JSON")
    if fb_json:
        try:
            cred_dict = json.loads(fb_json)
            _initialize(credentials.Certificate(cred_dict))
            logger.info("Firebase initialized from FIREBASE_CERT_JSON")
            return
        except Exception as e:
            # Fall through to file-based loading which may still work
            logger.error(f"Failed to init Firebase from FIREBASE_CERT_JSON: {e}")

    fb_path = settings.firebase_cert_path
    if fb_path and os.path.exists(fb_path):
        try:
            _initialize(credentials.Certificate(fb_path))
            logger.info(f"Firebase initialized from {fb_path}")
            return
        except Exception as e:
            logger.error(f"Failed to init Firebase from path {fb_path}: {e}")

    logger.warning("No Firebase credentials found; skipping Firebase initialization.")
