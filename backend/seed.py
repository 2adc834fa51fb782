# Seed data - demo patients and accounts for local runs and demo mode
from datetime import datetime, timedelta, timezone

from models import new_patient_document
from rounding import format_check_time
from store import IdentityProvider, RoundingStore, StoreError

DEMO_PASSWORD = "rounding123"

DEMO_USERS = [
    # uid, name, email, role
    ("u-admin", "Avery Admin", "admin@mediround.test", "Admin"),
    ("u-manager", "Morgan Manager", "manager@mediround.test", "Manager"),
    ("u-staff", "Sam Staff", "staff@mediround.test", "Staff"),
]


def seed_admin(store: RoundingStore, identity: IdentityProvider, email: str, password: str, name: str = "Admin"):
    """
    Create the first Admin account from ADMIN_EMAIL / ADMIN_PASSWORD.

    Idempotent: skips if the email already has an account. Returns the uid,
    or None when nothing was configured.
    """
    if not email or not password:
        print("No ADMIN_EMAIL/ADMIN_PASSWORD set - no admin account created")
        return None
    try:
        uid = identity.create_account(email, password)
    except StoreError as e:
        print(f"Admin account not created: {e}")
        return None
    store.set_user(uid, {"name": name or "Admin", "email": email, "role": "Admin"}, merge=False)
    print(f"Admin account created: {email}")
    return uid


def seed_data(store: RoundingStore, identity: IdentityProvider, now: datetime = None, tz=timezone.utc):
    """
    Reset the store and identity provider to the demo baseline, with check-ins relative to now.

    Creates the DEMO_USERS accounts with a published password: demo mode only.
    """
    now = now or datetime.now(timezone.utc)
    store.clear()
    identity.clear()

    for uid, name, email, role in DEMO_USERS:
        identity.create_account(email, DEMO_PASSWORD, uid=uid)
        store.set_user(uid, {"name": name, "email": email, "role": role}, merge=False)

    def ago(**delta):
        return format_check_time(now - timedelta(**delta), tz)

    # Patient 1: checked 10 minutes ago on a 60 minute interval - on time
    p1 = new_patient_document("John Doe", "Ward 3, Bed 12", 60, "WB-1001", "Fall risk")
    p1["checkIns"] = [
        {"time": ago(hours=2, minutes=5), "staff": "Sam Staff"},
        {"time": ago(minutes=10), "staff": "Morgan Manager"},
    ]

    # Patient 2: check-ins stored as a keyed mapping, last one 45 minutes ago
    # on a 30 minute interval - overdue
    p2 = new_patient_document("Jane Smith", "Ward 3, Bed 14", 30, "WB-1002", "Post-op day 1")
    p2["checkIns"] = {
        "-Nq1": {"time": ago(minutes=45), "staff": "Sam Staff"},
        "-Nq2": {"time": ago(hours=1, minutes=30), "staff": "Sam Staff"},
    }

    # Patient 3: never checked - overdue
    p3 = new_patient_document("Alex Rivera", "ICU, Bay 2", 15, "WB-1003", "")

    # Patient 4: one valid check-in 3 hours ago on a 4 hour interval - on time,
    # plus an entry whose time never parses
    p4 = new_patient_document("Maria Chen", "Ward 5, Bed 1", 240, "WB-1004", "Sleeping pattern irregular")
    p4["checkIns"] = [
        {"time": "pending sync", "staff": "Sam Staff"},
        {"time": ago(hours=3), "staff": "Avery Admin"},
    ]

    for patient_id, doc in [("p1", p1), ("p2", p2), ("p3", p3), ("p4", p4)]:
        store.put_patient(patient_id, doc)

    print("Seed data initialized:")
    print(f"  - {len(DEMO_USERS)} users: {[email for _, _, email, _ in DEMO_USERS]}")
    print(f"  - {len(store.list_patients())} patients")
