# Dashboard views built on the rounding logic: counts, cards, history, grid and CSV
# Everything here is recomputed from the patient documents on each call.
from __future__ import annotations

import csv
import io
from datetime import datetime, timezone, tzinfo
from typing import Dict, Iterable, List, Tuple

from rounding import (
    build_hour_slots,
    get_check_in_interval,
    get_last_check,
    get_parsed_check_ins,
    has_check_in_in_slot,
)

REPORT_HEADER = ["Patient", "Location", "Interval", "Last Check", "Last Staff"]
REPORT_FILENAME = "mediround-report.csv"

PatientDocs = Iterable[Tuple[str, Dict]]


def _format_interval(patient: Dict):
    interval = get_check_in_interval(patient)
    return int(interval) if float(interval).is_integer() else interval


def get_dashboard_summary(patients: PatientDocs, now: datetime, tz: tzinfo = timezone.utc, strict: bool = False) -> Dict:
    """Total, overdue and on-time patient counts"""
    docs = [doc for _pid, doc in patients]
    overdue = sum(1 for doc in docs if get_last_check(doc, now, tz, strict=strict)["isOverdue"])
    return {
        "totalPatients": len(docs),
        "overdueCount": overdue,
        "onTimeCount": len(docs) - overdue,
    }


def get_patient_card(patient_id: str, patient: Dict, now: datetime, tz: tzinfo = timezone.utc, strict: bool = False) -> Dict:
    """One patient card: document fields plus last check and status"""
    last = get_last_check(patient, now, tz, strict=strict)
    return {
        "id": patient_id,
        "name": patient.get("name") or "",
        "location": patient.get("location") or "",
        "wristbandID": patient.get("wristbandID") or "",
        "checkInInterval": _format_interval(patient),
        "comments": patient.get("comments") or "",
        "lastCheck": last["display"],
        "lastCheckAt": last["instant"].isoformat() if last["instant"] else None,
        "lastStaff": last["staff"],
        "isOverdue": last["isOverdue"],
        "status": "Overdue" if last["isOverdue"] else "On-time",
    }


def get_check_in_history(patients: PatientDocs, tz: tzinfo = timezone.utc, strict: bool = False) -> List[Dict]:
    """
    Every parseable check-in across all patients, newest first.

    Rows keep the raw time string as stored; entries whose time does not
    parse are left out.
    """
    rows = []
    for _pid, patient in patients:
        for entry in get_parsed_check_ins(patient, default_tz=tz, strict=strict):
            rows.append({
                "patient": patient.get("name") or "",
                "staff": entry.get("staff") or "",
                "time": entry.get("time"),
                "instant": entry["instant"],
            })
    rows.sort(key=lambda row: row["instant"], reverse=True)
    return rows


def get_rounding_grid(patients: PatientDocs, now: datetime, tz: tzinfo = timezone.utc, strict: bool = False) -> Dict:
    """
    24-hour activity grid: hourly slots ending at the current hour and, per
    patient, whether any check-in landed in each slot.

    Slots are taken from `now` once per call.
    """
    slots = build_hour_slots(now.astimezone(tz))
    rows = []
    for patient_id, patient in patients:
        rows.append({
            "id": patient_id,
            "name": patient.get("name") or "",
            "activity": [has_check_in_in_slot(patient, slot, default_tz=tz, strict=strict) for slot in slots],
        })
    return {
        "slots": [{"start": slot.isoformat(), "hour": slot.hour} for slot in slots],
        "rows": rows,
    }


def get_report_rows(patients: PatientDocs, now: datetime, tz: tzinfo = timezone.utc, strict: bool = False) -> List[List]:
    """Header plus one [name, location, interval, last check, last staff] row per patient"""
    rows = [list(REPORT_HEADER)]
    for _pid, patient in patients:
        last = get_last_check(patient, now, tz, strict=strict)
        rows.append([
            patient.get("name") or "",
            patient.get("location") or "",
            _format_interval(patient),
            last["display"],
            last["staff"],
        ])
    return rows


def build_report_csv(patients: PatientDocs, now: datetime, tz: tzinfo = timezone.utc, strict: bool = False) -> str:
    """CSV text for the report download. Fields containing commas are quoted."""
    output = io.StringIO()
    writer = csv.writer(output, lineterminator="\n")
    writer.writerows(get_report_rows(patients, now, tz, strict=strict))
    return output.getvalue()
