"""
API smoke tests using FastAPI TestClient against the seeded store
"""
import csv
import io
import pytest

from rounding import parse_check_time
from conftest import NOW


class TestRootAndHealth:

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json() == {"message": "MediRound Rounding API"}

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


class TestSignInRequired:
    """Rounding views need a signed-in user"""

    def test_views_reject_anonymous(self, client):
        for path in ["/dashboard", "/patients", "/patients/p1", "/check-ins", "/rounding-graph", "/reports/csv", "/auth/me"]:
            response = client.get(path)
            assert response.status_code == 401, path
            assert response.json()["detail"] == "Please sign in."

    def test_bad_token(self, client):
        response = client.get("/dashboard", headers={"Authorization": "Bearer not-a-token"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid or expired token"


class TestDashboardEndpoint:
    """GET /dashboard"""

    def test_seeded_counts(self, staff_client):
        """Seed: p1 and p4 on time, p2 and p3 overdue"""
        response = staff_client.get("/dashboard")
        assert response.status_code == 200
        assert response.json() == {"totalPatients": 4, "overdueCount": 2, "onTimeCount": 2}


class TestPatientsEndpoint:
    """GET /patients and GET /patients/{id}"""

    def test_list_patients(self, staff_client):
        response = staff_client.get("/patients")
        assert response.status_code == 200
        cards = {card["id"]: card for card in response.json()}
        assert set(cards) == {"p1", "p2", "p3", "p4"}

        assert cards["p1"]["status"] == "On-time"
        assert cards["p1"]["lastStaff"] == "Morgan Manager"
        assert cards["p2"]["status"] == "Overdue"
        assert cards["p2"]["lastStaff"] == "Sam Staff"
        assert cards["p3"]["lastCheck"] == "None"
        assert cards["p3"]["isOverdue"] is True
        # unparseable entry skipped, valid one 3 hours ago on a 4 hour interval
        assert cards["p4"]["lastStaff"] == "Avery Admin"
        assert cards["p4"]["isOverdue"] is False

    def test_get_patient(self, staff_client):
        response = staff_client.get("/patients/p1")
        assert response.status_code == 200
        card = response.json()
        assert card["name"] == "John Doe"
        assert card["location"] == "Ward 3, Bed 12"
        assert card["wristbandID"] == "WB-1001"
        assert card["checkInInterval"] == 60
        assert card["comments"] == "Fall risk"
        assert card["lastCheck"] == "11/20/2025, 2:27:12 PM"

    def test_get_unknown_patient(self, staff_client):
        response = staff_client.get("/patients/nope")
        assert response.status_code == 404
        assert response.json()["detail"] == "Patient not found"

    def test_display_offset_from_env(self, staff_client, monkeypatch):
        monkeypatch.setenv("DISPLAY_UTC_OFFSET_MINUTES", "-300")
        card = staff_client.get("/patients/p1").json()
        assert card["lastCheck"] == "11/20/2025, 9:27:12 AM"

    def test_bad_display_offset_falls_back_to_utc(self, staff_client, monkeypatch):
        monkeypatch.setenv("DISPLAY_UTC_OFFSET_MINUTES", "eastern")
        card = staff_client.get("/patients/p1").json()
        assert card["lastCheck"] == "11/20/2025, 2:27:12 PM"


class TestCreatePatient:
    """POST /patients (Manager/Admin)"""

    def test_manager_creates_patient(self, manager_client):
        response = manager_client.post(
            "/patients",
            json={"name": "New Patient", "location": "Ward 9", "checkInInterval": 20, "wristbandID": "WB-9"},
        )
        assert response.status_code == 201
        card = response.json()
        assert card["name"] == "New Patient"
        assert card["checkInInterval"] == 20
        assert card["lastCheck"] == "None"
        assert card["status"] == "Overdue"

        listed = manager_client.get("/patients").json()
        assert any(c["id"] == card["id"] for c in listed)

    def test_staff_cannot_create_patient(self, staff_client):
        response = staff_client.post("/patients", json={"name": "Nope"})
        assert response.status_code == 403

    def test_negative_interval_rejected(self, admin_client):
        response = admin_client.post("/patients", json={"name": "X", "checkInInterval": -5})
        assert response.status_code == 422


class TestRecordCheckIn:
    """POST /patients/{id}/check-ins"""

    def test_check_in_clears_overdue(self, staff_client, seeded):
        assert staff_client.get("/patients/p3").json()["isOverdue"] is True

        response = staff_client.post("/patients/p3/check-ins")
        assert response.status_code == 201
        card = response.json()
        assert card["isOverdue"] is False
        assert card["lastStaff"] == "Sam Staff"
        assert card["lastCheck"] == "11/20/2025, 2:37:12 PM"

        stored = seeded.get_patient("p3")["checkIns"]
        assert stored == [{"time": "November 20, 2025 at 2:37:12 PM UTC", "staff": "Sam Staff"}]

    def test_check_in_on_mapping_patient(self, staff_client, seeded):
        response = staff_client.post("/patients/p2/check-ins")
        assert response.status_code == 201
        assert response.json()["isOverdue"] is False
        check_ins = seeded.get_patient("p2")["checkIns"]
        assert isinstance(check_ins, dict)
        assert len(check_ins) == 3

    def test_check_in_time_uses_display_offset(self, staff_client, seeded, monkeypatch):
        monkeypatch.setenv("DISPLAY_UTC_OFFSET_MINUTES", "-300")
        staff_client.post("/patients/p3/check-ins")
        stored = seeded.get_patient("p3")["checkIns"][0]["time"]
        assert stored == "November 20, 2025 at 9:37:12 AM UTC-5"
        assert parse_check_time(stored) == NOW

    def test_check_in_unknown_patient(self, staff_client):
        response = staff_client.post("/patients/nope/check-ins")
        assert response.status_code == 404

    def test_dashboard_reflects_check_in(self, staff_client):
        staff_client.post("/patients/p3/check-ins")
        staff_client.post("/patients/p2/check-ins")
        assert staff_client.get("/dashboard").json() == {"totalPatients": 4, "overdueCount": 0, "onTimeCount": 4}


class TestCheckInsEndpoint:
    """GET /check-ins"""

    def test_history_newest_first(self, staff_client):
        response = staff_client.get("/check-ins")
        assert response.status_code == 200
        rows = response.json()
        # p1 x2, p2 x2, p4 x1 valid (the unparseable p4 entry is left out)
        assert len(rows) == 5
        assert [r["patient"] for r in rows] == ["John Doe", "Jane Smith", "Jane Smith", "John Doe", "Maria Chen"]
        assert all(r["time"] != "pending sync" for r in rows)


class TestRoundingGraphEndpoint:
    """GET /rounding-graph"""

    def test_grid(self, staff_client):
        response = staff_client.get("/rounding-graph")
        assert response.status_code == 200
        grid = response.json()
        assert len(grid["slots"]) == 24
        assert grid["slots"][-1]["hour"] == 14
        rows = {row["id"]: row["activity"] for row in grid["rows"]}
        # p1: 14:27 and 12:32
        assert rows["p1"][23] is True and rows["p1"][21] is True
        # p2: 13:52 and 13:07
        assert rows["p2"][22] is True and sum(rows["p2"]) == 1
        assert not any(rows["p3"])
        # p4: 11:37
        assert rows["p4"][20] is True and sum(rows["p4"]) == 1


class TestReportEndpoint:
    """GET /reports/csv"""

    def test_csv_download(self, staff_client):
        response = staff_client.get("/reports/csv")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert response.headers["content-disposition"] == "attachment; filename=mediround-report.csv"

        rows = list(csv.reader(io.StringIO(response.text)))
        assert rows[0] == ["Patient", "Location", "Interval", "Last Check", "Last Staff"]
        assert rows[1] == ["John Doe", "Ward 3, Bed 12", "60", "11/20/2025, 2:27:12 PM", "Morgan Manager"]
        assert rows[3] == ["Alex Rivera", "ICU, Bay 2", "15", "None", ""]
        assert len(rows) == 5


class TestDebugStrictness:
    """DEBUG=true turns malformed checkIns into a loud failure"""

    def test_malformed_check_ins_ignored_by_default(self, staff_client, seeded):
        seeded.put_patient("bad", {"name": "Bad", "checkIns": "oops"})
        cards = {c["id"]: c for c in staff_client.get("/patients").json()}
        assert cards["bad"]["isOverdue"] is True
        assert cards["bad"]["lastCheck"] == "None"

    def test_malformed_check_ins_raise_in_debug(self, staff_client, seeded, monkeypatch):
        monkeypatch.setenv("DEBUG", "true")
        seeded.put_patient("bad", {"name": "Bad", "checkIns": "oops"})
        # TestClient re-raises server exceptions
        with pytest.raises(TypeError):
            staff_client.get("/patients")
