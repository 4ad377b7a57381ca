"""
Document storage for users and consultations.

Collections are lists of JSON objects. The production store keeps one JSON
file per collection and replaces it atomically on every write; the memory
store is used by tests and ephemeral deployments.
"""

import json
import shutil
import tempfile
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from ..models.consultation import Consultation
from ..models.user import User
from ..utils.exceptions import (
    DuplicateKeyError,
    NotFoundError,
    StartupError,
    StartupErrorKind,
    StoreError,
)
from ..utils.logger import get_logger

logger = get_logger(__name__)

USERS = "users"
CONSULTATIONS = "consultations"


class DocumentStore:
    """Collection-level operations shared by every backend"""

    def __init__(self):
        self._lock = Lock()

    def _load(self, collection: str) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def _save(self, collection: str, docs: List[Dict[str, Any]]) -> None:
        raise NotImplementedError

    # Users

    def list_users(self) -> List[User]:
        return [User(**doc) for doc in self._load(USERS)]

    def find_user_by_login_id(self, login_id: str) -> Optional[User]:
        """Find user by login id (case-insensitive)"""
        wanted = login_id.strip().lower()
        for doc in self._load(USERS):
            if doc.get("login_id", "").lower() == wanted:
                return User(**doc)
        return None

    def find_user_by_id(self, user_id: str) -> Optional[User]:
        for doc in self._load(USERS):
            if doc.get("id") == user_id:
                return User(**doc)
        return None

    def insert_user(self, user: User) -> User:
        """Insert a user; login ids are unique"""
        with self._lock:
            docs = self._load(USERS)
            wanted = user.login_id.lower()
            if any(d.get("login_id", "").lower() == wanted for d in docs):
                raise DuplicateKeyError(f"Login id '{user.login_id}' already exists")
            docs.append(user.model_dump(mode="json"))
            self._save(USERS, docs)
        return user

    def update_user(self, user_id: str, **updates) -> User:
        """Update user fields"""
        with self._lock:
            docs = self._load(USERS)
            for i, doc in enumerate(docs):
                if doc.get("id") == user_id:
                    updated = User(**{**doc, **updates})
                    docs[i] = updated.model_dump(mode="json")
                    self._save(USERS, docs)
                    return updated
        raise NotFoundError(f"User with ID '{user_id}' not found")

    # Consultations

    def insert_consultation(self, consultation: Consultation) -> Consultation:
        with self._lock:
            docs = self._load(CONSULTATIONS)
            docs.append(consultation.model_dump(mode="json"))
            self._save(CONSULTATIONS, docs)
        return consultation

    def find_consultation_by_id(self, consultation_id: str) -> Optional[Consultation]:
        for doc in self._load(CONSULTATIONS):
            if doc.get("id") == consultation_id:
                return Consultation(**doc)
        return None

    def find_consultations(self, query: Optional[Dict[str, Any]] = None) -> List[Consultation]:
        """Return consultations whose fields equal every value in query (None values are ignored)"""
        criteria = {k: v for k, v in (query or {}).items() if v is not None}
        return [
            Consultation(**doc)
            for doc in self._load(CONSULTATIONS)
            if all(doc.get(k) == v for k, v in criteria.items())
        ]


class MemoryDocumentStore(DocumentStore):
    """Process-local store"""

    def __init__(self):
        super().__init__()
        self._collections: Dict[str, List[Dict[str, Any]]] = {}

    def _load(self, collection: str) -> List[Dict[str, Any]]:
        return [dict(doc) for doc in self._collections.get(collection, [])]

    def _save(self, collection: str, docs: List[Dict[str, Any]]) -> None:
        self._collections[collection] = [dict(doc) for doc in docs]


class JsonDocumentStore(DocumentStore):
    """One JSON file per collection under data_dir"""

    def __init__(self, data_dir: Path):
        super().__init__()
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(exist_ok=True, parents=True)

    def _path(self, collection: str) -> Path:
        return self.data_dir / f"{collection}.json"

    def _load(self, collection: str) -> List[Dict[str, Any]]:
        path = self._path(collection)
        if not path.exists():
            return []
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return list(data.get(collection, []))
        except (json.JSONDecodeError, OSError, AttributeError) as e:
            raise StoreError(f"Failed to load {collection} from {path}: {str(e)}")

    def _save(self, collection: str, docs: List[Dict[str, Any]]) -> None:
        path = self._path(collection)
        with tempfile.NamedTemporaryFile(mode="w", dir=path.parent, delete=False, encoding="utf-8") as tf:
            json.dump({collection: docs}, tf, indent=2, ensure_ascii=False)
            temp_path = Path(tf.name)

        try:
            # Atomic move/replace
            shutil.move(str(temp_path), str(path))
        except Exception as e:
            if temp_path.exists():
                temp_path.unlink()
            raise StoreError(f"Failed to save {collection} to {path}: {str(e)}")


def open_document_store(url: str) -> DocumentStore:
    """
    Open the store named by a connection string.

    Supported forms:
        json:///absolute/dir
        json://relative/dir
        memory://
    """
    if not url or not url.strip():
        raise StartupError(
            "DATABASE_URL environment variable is not defined",
            StartupErrorKind.MISSING_CONNECTION_STRING,
        )
    parsed = urlparse(url.strip())
    if parsed.scheme == "memory":
        logger.warning("Using in-memory document store; data is lost on restart")
        return MemoryDocumentStore()
    if parsed.scheme == "json":
        data_dir = f"{parsed.netloc}{parsed.path}"
        if not data_dir:
            raise StartupError(
                f"Connection string '{url}' has no directory",
                StartupErrorKind.UNSUPPORTED_DATABASE_URL,
            )
        logger.info("Using JSON document store", data_dir=data_dir)
        return JsonDocumentStore(Path(data_dir))
    raise StartupError(
        f"Unsupported connection string scheme '{parsed.scheme}'",
        StartupErrorKind.UNSUPPORTED_DATABASE_URL,
    )
