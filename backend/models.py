# Data models for patient and user documents
from typing import Dict, List, Optional
from dataclasses import dataclass, field, asdict
import re

ROLES = ("Staff", "Manager", "Admin")
DEFAULT_ROLE = "Staff"


@dataclass
class UserProfile:
    """Profile document from the "user" collection, keyed by identity-provider uid"""
    uid: str
    name: str
    email: str
    role: str = DEFAULT_ROLE

    def role_key(self) -> str:
        """Roles are stored as written but compared case-insensitively"""
        return (self.role or "").lower()

    def is_admin(self) -> bool:
        return self.role_key() == "admin"

    def is_manager(self) -> bool:
        return self.role_key() == "manager"

    def to_document(self) -> Dict:
        doc = asdict(self)
        doc.pop("uid")
        return doc

    @classmethod
    def from_document(cls, uid: str, doc: Dict) -> "UserProfile":
        return cls(
            uid=uid,
            name=doc.get("name") or doc.get("email") or "",
            email=doc.get("email") or "",
            role=doc.get("role") or DEFAULT_ROLE,
        )


@dataclass
class Account:
    """Identity-provider account (credentials only, no profile data)"""
    uid: str
    email: str
    passwordHash: str
    resetRequests: List[str] = field(default_factory=list)  # ISO timestamps


def normalize_email(email: str) -> str:
    """Normalize email: trim, lowercase"""
    return email.strip().lower()


def is_valid_email(email: str) -> bool:
    return re.fullmatch(r"[^@\s]+@[^@\s]+\.[^@\s]+", email or "") is not None


def canonical_role(role: str) -> Optional[str]:
    """Map any casing of a known role to its stored spelling, None if unknown"""
    for known in ROLES:
        if known.lower() == (role or "").strip().lower():
            return known
    return None


def new_patient_document(
    name: str,
    location: str = "",
    check_in_interval: int = 0,
    wristband_id: str = "",
    comments: str = "",
) -> Dict:
    """Patient document in the shape the "patients" collection stores"""
    return {
        "name": name,
        "location": location,
        "wristbandID": wristband_id,
        "checkInInterval": check_in_interval,
        "comments": comments,
        "checkIns": [],
    }
