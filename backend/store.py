# In-memory document store and identity provider
# Both stand in for the managed backend and are handed to endpoints as dependencies.
from __future__ import annotations

import copy
import logging
import secrets
import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Tuple

from werkzeug.security import check_password_hash, generate_password_hash

from models import Account, UserProfile, normalize_email

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Raised by the store or identity provider for a request it cannot satisfy"""


class RoundingStore:
    """
    Collections "patients" and "user", as plain documents.

    Reads return deep copies so callers never mutate stored documents.
    """

    def __init__(self):
        self._patients: Dict[str, Dict] = {}
        self._users: Dict[str, Dict] = {}
        self._lock = threading.Lock()

    def clear(self):
        with self._lock:
            self._patients.clear()
            self._users.clear()

    # patients

    def list_patients(self) -> List[Tuple[str, Dict]]:
        """All (patient_id, document) pairs in insertion order"""
        with self._lock:
            return [(pid, copy.deepcopy(doc)) for pid, doc in self._patients.items()]

    def get_patient(self, patient_id: str) -> Optional[Dict]:
        with self._lock:
            doc = self._patients.get(patient_id)
            return copy.deepcopy(doc) if doc is not None else None

    def put_patient(self, patient_id: Optional[str], doc: Dict) -> str:
        """Create or replace a patient document, generating an id when none is given"""
        patient_id = patient_id or uuid.uuid4().hex[:20]
        with self._lock:
            self._patients[patient_id] = copy.deepcopy(doc)
        logger.info("Stored patient %s", patient_id)
        return patient_id

    def add_check_in(self, patient_id: str, entry: Dict) -> Dict:
        """
        Append a check-in entry to a patient's checkIns.

        Mapping-shaped checkIns get a generated key; list-shaped (or missing)
        checkIns are appended to.
        """
        with self._lock:
            doc = self._patients.get(patient_id)
            if doc is None:
                raise StoreError(f"Patient {patient_id} not found")
            check_ins = doc.get("checkIns")
            if isinstance(check_ins, dict):
                check_ins[uuid.uuid4().hex[:12]] = dict(entry)
            elif isinstance(check_ins, list):
                check_ins.append(dict(entry))
            else:
                doc["checkIns"] = [dict(entry)]
            result = copy.deepcopy(doc)
        logger.info("Recorded check-in for patient %s by %s", patient_id, entry.get("staff") or "unknown")
        return result

    # users

    def list_users(self) -> List[UserProfile]:
        with self._lock:
            return [UserProfile.from_document(uid, doc) for uid, doc in self._users.items()]

    def get_user(self, uid: str) -> Optional[UserProfile]:
        with self._lock:
            doc = self._users.get(uid)
            return UserProfile.from_document(uid, doc) if doc is not None else None

    def set_user(self, uid: str, fields: Dict, merge: bool = True) -> UserProfile:
        """Write a user document; merge=True keeps fields not present in `fields`"""
        with self._lock:
            current = self._users.get(uid, {}) if merge else {}
            self._users[uid] = {**current, **fields}
            return UserProfile.from_document(uid, self._users[uid])


class IdentityProvider:
    """
    Email/password accounts with opaque bearer tokens.

    Tokens expire after TOKEN_TTL, and each account keeps at most
    MAX_TOKENS_PER_ACCOUNT live tokens: signing in past the cap revokes the
    oldest one.
    """

    MIN_PASSWORD_LENGTH = 6
    TOKEN_TTL = timedelta(hours=12)
    MAX_TOKENS_PER_ACCOUNT = 5

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._accounts: Dict[str, Account] = {}  # by normalized email
        self._tokens: Dict[str, Tuple[str, datetime]] = {}  # token -> (uid, expires at), oldest first
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = threading.Lock()

    def _purge_expired(self, now: datetime):
        """Drop expired tokens. Caller holds the lock."""
        for token in [t for t, (_uid, expires) in self._tokens.items() if expires <= now]:
            del self._tokens[token]

    def clear(self):
        with self._lock:
            self._accounts.clear()
            self._tokens.clear()

    def create_account(self, email: str, password: str, uid: Optional[str] = None) -> str:
        key = normalize_email(email)
        if len(password or "") < self.MIN_PASSWORD_LENGTH:
            raise StoreError(f"Password should be at least {self.MIN_PASSWORD_LENGTH} characters")
        with self._lock:
            if key in self._accounts:
                raise StoreError("Email already in use")
            account = Account(
                uid=uid or uuid.uuid4().hex,
                email=key,
                passwordHash=generate_password_hash(password),
            )
            self._accounts[key] = account
        logger.info("Created account %s", account.uid)
        return account.uid

    def sign_in(self, email: str, password: str) -> str:
        with self._lock:
            account = self._accounts.get(normalize_email(email))
            if account is None or not check_password_hash(account.passwordHash, password):
                logger.warning("Failed sign-in for %s", normalize_email(email))
                raise StoreError("Invalid email or password")
            now = self._clock()
            self._purge_expired(now)
            live = [t for t, (uid, _expires) in self._tokens.items() if uid == account.uid]
            for token in live[: max(0, len(live) - self.MAX_TOKENS_PER_ACCOUNT + 1)]:
                del self._tokens[token]
            token = secrets.token_urlsafe(32)
            self._tokens[token] = (account.uid, now + self.TOKEN_TTL)
        return token

    def verify_token(self, token: str) -> Optional[str]:
        """uid for a live token, None for unknown or expired ones"""
        with self._lock:
            entry = self._tokens.get(token)
            if entry is None:
                return None
            uid, expires = entry
            if expires <= self._clock():
                del self._tokens[token]
                return None
            return uid

    def token_count(self) -> int:
        with self._lock:
            return len(self._tokens)

    def email_for(self, uid: str) -> Optional[str]:
        with self._lock:
            for account in self._accounts.values():
                if account.uid == uid:
                    return account.email
        return None

    def sign_out(self, token: str):
        with self._lock:
            self._tokens.pop(token, None)

    def send_password_reset(self, email: str) -> bool:
        """Record a reset request. Returns False when no account has that email."""
        with self._lock:
            account = self._accounts.get(normalize_email(email))
            if account is None:
                return False
            account.resetRequests.append(datetime.now(timezone.utc).isoformat())
        logger.info("Password reset requested for %s", account.uid)
        return True

    def reset_requests(self, email: str) -> List[str]:
        with self._lock:
            account = self._accounts.get(normalize_email(email))
            return list(account.resetRequests) if account else []


_store = RoundingStore()
_identity = IdentityProvider()


def get_store() -> RoundingStore:
    """FastAPI dependency; tests override it with a fresh store"""
    return _store


def get_identity_provider() -> IdentityProvider:
    """FastAPI dependency; tests override it with a fresh provider"""
    return _identity


def get_clock() -> datetime:
    """FastAPI dependency for the current instant"""
    return datetime.now(timezone.utc)
