# Backend main entry point - MediRound rounding API
import logging
import os
from datetime import datetime, timedelta, timezone
from dotenv import load_dotenv
load_dotenv()  # Load .env so DEMO_MODE=true works for local reviewers
from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from pydantic import BaseModel, Field
from typing import Optional, List

from auth import get_current_token, get_current_user, require_admin, require_admin_or_manager
from models import ROLES, UserProfile, canonical_role, is_valid_email, new_patient_document
from reports import (
    REPORT_FILENAME,
    build_report_csv,
    get_check_in_history,
    get_dashboard_summary,
    get_patient_card,
    get_rounding_grid,
)
from rounding import format_check_time
from seed import seed_admin, seed_data
from store import (
    IdentityProvider,
    RoundingStore,
    StoreError,
    get_clock,
    get_identity_provider,
    get_store,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="MediRound Rounding API")


def _is_demo_mode() -> bool:
    """True only when DEMO_MODE env var is explicitly 'true' (case-insensitive)."""
    return os.environ.get("DEMO_MODE", "").lower() == "true"


def _is_strict() -> bool:
    """DEBUG=true makes malformed checkIns fail loudly instead of counting as empty."""
    return os.environ.get("DEBUG", "").lower() == "true"


def _display_tz() -> timezone:
    """Fixed offset for display strings, grid hour labels and offset-less timestamps."""
    raw = os.environ.get("DISPLAY_UTC_OFFSET_MINUTES", "0")
    try:
        minutes = int(raw)
    except ValueError:
        logger.warning("Ignoring DISPLAY_UTC_OFFSET_MINUTES=%r, using UTC", raw)
        return timezone.utc
    if abs(minutes) >= 24 * 60:
        logger.warning("DISPLAY_UTC_OFFSET_MINUTES=%r out of range, using UTC", raw)
        return timezone.utc
    return timezone(timedelta(minutes=minutes))


# Configure CORS - allow local dev and the deployed frontend
_allowed_origins = [
    "http://localhost:5173",
    "http://localhost:5174",
]
_frontend_url = os.environ.get("FRONTEND_URL", "")
if _frontend_url:
    _allowed_origins.append(_frontend_url)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request/Response models
class RegisterRequest(BaseModel):
    name: str = Field(min_length=1)
    email: str
    password: str


class LoginRequest(BaseModel):
    email: str
    password: str


class PasswordResetRequest(BaseModel):
    email: str


class UserResponse(BaseModel):
    uid: str
    name: str
    email: str
    role: str


class RoleUpdate(BaseModel):
    role: str


class PatientCreate(BaseModel):
    name: str = Field(min_length=1)
    location: str = ""
    checkInInterval: int = Field(default=0, ge=0)
    wristbandID: str = ""
    comments: str = ""


class PatientCard(BaseModel):
    id: str
    name: str
    location: str
    wristbandID: str
    checkInInterval: float
    comments: str
    lastCheck: str
    lastCheckAt: Optional[str]
    lastStaff: str
    isOverdue: bool
    status: str


class CheckInRow(BaseModel):
    patient: str
    staff: str
    time: str
    instant: datetime


def _user_response(user: UserProfile) -> UserResponse:
    return UserResponse(uid=user.uid, name=user.name, email=user.email, role=user.role)


def _patient_card(store: RoundingStore, patient_id: str, now: datetime) -> PatientCard:
    doc = store.get_patient(patient_id)
    if doc is None:
        raise HTTPException(status_code=404, detail="Patient not found")
    return PatientCard(**get_patient_card(patient_id, doc, now, _display_tz(), strict=_is_strict()))


@app.get("/")
def read_root():
    return {"message": "MediRound Rounding API"}


@app.get("/health")
def health_check():
    return {"status": "healthy"}


# Auth

@app.post("/auth/register", response_model=UserResponse, status_code=201)
def register(
    body: RegisterRequest,
    store: RoundingStore = Depends(get_store),
    identity: IdentityProvider = Depends(get_identity_provider),
):
    """Create an account and its profile document. New users are always Staff."""
    if not is_valid_email(body.email):
        raise HTTPException(status_code=400, detail="Invalid email address")
    try:
        uid = identity.create_account(body.email, body.password)
    except StoreError as e:
        raise HTTPException(status_code=400, detail=str(e))
    user = store.set_user(uid, {"name": body.name, "email": body.email, "role": "Staff"}, merge=False)
    return _user_response(user)


@app.post("/auth/login")
def login(body: LoginRequest, identity: IdentityProvider = Depends(get_identity_provider)):
    try:
        token = identity.sign_in(body.email, body.password)
    except StoreError as e:
        raise HTTPException(status_code=401, detail=str(e))
    return {"token": token, "tokenType": "bearer"}


@app.post("/auth/logout")
def logout(
    token: str = Depends(get_current_token),
    identity: IdentityProvider = Depends(get_identity_provider),
):
    identity.sign_out(token)
    return {"status": "signed_out"}


@app.post("/auth/password-reset")
def request_password_reset(body: PasswordResetRequest, identity: IdentityProvider = Depends(get_identity_provider)):
    """Send a reset email. Unknown addresses get the same answer so accounts cannot be probed."""
    if not body.email:
        raise HTTPException(status_code=400, detail="Enter email first.")
    identity.send_password_reset(body.email)
    return {"status": "sent"}


@app.get("/auth/me", response_model=UserResponse)
def me(user: UserProfile = Depends(get_current_user)):
    return _user_response(user)


# Rounding views

@app.get("/dashboard")
def dashboard(
    _user: UserProfile = Depends(get_current_user),
    store: RoundingStore = Depends(get_store),
    now: datetime = Depends(get_clock),
):
    """Total, overdue and on-time counts"""
    return get_dashboard_summary(store.list_patients(), now, _display_tz(), strict=_is_strict())


@app.get("/patients", response_model=List[PatientCard])
def list_patients(
    _user: UserProfile = Depends(get_current_user),
    store: RoundingStore = Depends(get_store),
    now: datetime = Depends(get_clock),
):
    tz = _display_tz()
    return [
        PatientCard(**get_patient_card(pid, doc, now, tz, strict=_is_strict()))
        for pid, doc in store.list_patients()
    ]


@app.post("/patients", response_model=PatientCard, status_code=201)
def create_patient(
    body: PatientCreate,
    _user: UserProfile = Depends(require_admin_or_manager),
    store: RoundingStore = Depends(get_store),
    now: datetime = Depends(get_clock),
):
    doc = new_patient_document(body.name, body.location, body.checkInInterval, body.wristbandID, body.comments)
    patient_id = store.put_patient(None, doc)
    return _patient_card(store, patient_id, now)


@app.get("/patients/{patient_id}", response_model=PatientCard)
def get_patient(
    patient_id: str,
    _user: UserProfile = Depends(get_current_user),
    store: RoundingStore = Depends(get_store),
    now: datetime = Depends(get_clock),
):
    return _patient_card(store, patient_id, now)


@app.post("/patients/{patient_id}/check-ins", response_model=PatientCard, status_code=201)
def record_check_in(
    patient_id: str,
    user: UserProfile = Depends(get_current_user),
    store: RoundingStore = Depends(get_store),
    now: datetime = Depends(get_clock),
):
    """Record a check-in stamped now, in the store's text format, by the signed-in user"""
    entry = {"time": format_check_time(now, _display_tz()), "staff": user.name}
    try:
        store.add_check_in(patient_id, entry)
    except StoreError:
        raise HTTPException(status_code=404, detail="Patient not found")
    return _patient_card(store, patient_id, now)


@app.get("/check-ins", response_model=List[CheckInRow])
def check_in_history(
    _user: UserProfile = Depends(get_current_user),
    store: RoundingStore = Depends(get_store),
):
    return get_check_in_history(store.list_patients(), _display_tz(), strict=_is_strict())


@app.get("/rounding-graph")
def rounding_graph(
    _user: UserProfile = Depends(get_current_user),
    store: RoundingStore = Depends(get_store),
    now: datetime = Depends(get_clock),
):
    """24 hourly slots ending at the current hour, one activity row per patient"""
    return get_rounding_grid(store.list_patients(), now, _display_tz(), strict=_is_strict())


@app.get("/reports/csv")
def report_csv(
    _user: UserProfile = Depends(get_current_user),
    store: RoundingStore = Depends(get_store),
    now: datetime = Depends(get_clock),
):
    content = build_report_csv(store.list_patients(), now, _display_tz(), strict=_is_strict())
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={REPORT_FILENAME}"},
    )


# User administration

@app.get("/users", response_model=List[UserResponse])
def list_users(
    _user: UserProfile = Depends(require_admin_or_manager),
    store: RoundingStore = Depends(get_store),
):
    return [_user_response(u) for u in store.list_users()]


@app.post("/users/{uid}/role", response_model=UserResponse)
def change_role(
    uid: str,
    body: RoleUpdate,
    _user: UserProfile = Depends(require_admin),
    store: RoundingStore = Depends(get_store),
):
    role = canonical_role(body.role)
    if role is None:
        raise HTTPException(status_code=400, detail=f"role must be one of {', '.join(ROLES)}")
    if store.get_user(uid) is None:
        raise HTTPException(status_code=404, detail="User not found")
    return _user_response(store.set_user(uid, {"role": role}, merge=True))


@app.post("/users/{uid}/password-reset")
def reset_user_password(
    uid: str,
    _user: UserProfile = Depends(require_admin_or_manager),
    store: RoundingStore = Depends(get_store),
    identity: IdentityProvider = Depends(get_identity_provider),
):
    target = store.get_user(uid)
    if target is None:
        raise HTTPException(status_code=404, detail="User not found")
    if not identity.send_password_reset(target.email):
        raise HTTPException(status_code=400, detail="User has no sign-in account")
    return {"status": "sent", "email": target.email}


# Demo mode

@app.get("/demo/status")
def demo_status():
    """Returns whether demo mode is enabled. Only for frontend visibility gate."""
    return {"demoMode": _is_demo_mode()}


@app.post("/demo/reset")
def demo_reset(
    store: RoundingStore = Depends(get_store),
    identity: IdentityProvider = Depends(get_identity_provider),
    now: datetime = Depends(get_clock),
):
    """
    Reset prototype to baseline. Only available when DEMO_MODE=true.
    Restores demo patients and accounts; existing tokens stop working.
    """
    if not _is_demo_mode():
        raise HTTPException(status_code=404, detail="Demo reset not available")
    seed_data(store, identity, now, _display_tz())
    return {"status": "ok"}


def initialize_store(store: RoundingStore, identity: IdentityProvider):
    """
    Startup data. Demo mode loads the demo patients and accounts; otherwise
    only the Admin named by ADMIN_EMAIL / ADMIN_PASSWORD is created.
    """
    if _is_demo_mode():
        seed_data(store, identity, tz=_display_tz())
    else:
        seed_admin(
            store,
            identity,
            os.environ.get("ADMIN_EMAIL", ""),
            os.environ.get("ADMIN_PASSWORD", ""),
            os.environ.get("ADMIN_NAME", "Admin"),
        )


initialize_store(get_store(), get_identity_provider())

if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=logging.INFO)
    uvicorn.run(app, host="0.0.0.0", port=8000)
