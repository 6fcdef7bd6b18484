"""Service account loading and Firestore client initialisation."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

import firebase_admin
from firebase_admin import credentials, firestore
from google.auth.exceptions import GoogleAuthError

from koffee_tools.error_handling import CredentialError

logger = logging.getLogger(__name__)


def resolve_service_account_path(raw_path: Union[str, Path], base_dir: Optional[Path] = None) -> Path:
    """Resolve ``raw_path`` against ``base_dir`` (the working directory by default)."""
    path = Path(raw_path).expanduser()
    if not path.is_absolute():
        path = (base_dir or Path.cwd()) / path
    return path.resolve()


def load_service_account(path: Union[str, Path]) -> Dict[str, Any]:
    """Read a service account JSON file.

    Raises:
        CredentialError: If the file is missing, unreadable or not a JSON object.
    """
    path = Path(path)
    if not path.is_file():
        raise CredentialError(f"Service account file not found at path: {path}", path=str(path))
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise CredentialError(
            f"The service account file at {path} is not valid JSON.",
            path=str(path),
            cause=exc,
        ) from exc
    except OSError as exc:
        raise CredentialError(f"Could not read service account file {path}: {exc}", path=str(path), cause=exc) from exc
    if not isinstance(payload, dict):
        raise CredentialError(f"The service account file at {path} must contain a JSON object.", path=str(path))
    return payload


def init_firestore(service_account: Dict[str, Any], app_name: Optional[str] = None) -> Any:
    """Initialise (or reuse) a Firebase app and return its Firestore client."""
    app_kwargs = {"name": app_name} if app_name else {}
    try:
        app = firebase_admin.get_app(*([app_name] if app_name else []))
    except ValueError:
        try:
            cred = credentials.Certificate(service_account)
            app = firebase_admin.initialize_app(cred, **app_kwargs)
        except (ValueError, TypeError) as exc:
            raise CredentialError(f"Error initializing Firebase Admin SDK: {exc}", cause=exc) from exc
    try:
        return firestore.client(app)
    except (GoogleAuthError, ValueError) as exc:
        raise CredentialError(f"Error creating Firestore client: {exc}", cause=exc) from exc


def connect(path: Union[str, Path], app_name: Optional[str] = None) -> Any:
    """Load a service account from ``path`` and return a Firestore client."""
    resolved = resolve_service_account_path(path)
    logger.info("Resolved service account path: %s", resolved)
    client = init_firestore(load_service_account(resolved), app_name=app_name)
    logger.info("Firebase Admin SDK initialized successfully.")
    return client
