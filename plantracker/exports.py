# exports.py
# =============================================================================
# Outbound data formats: an iCalendar feed of the plan and the JSON backup
# document ({exportedAt, workouts, checkIns, history}) plus its parser.
# =============================================================================

from __future__ import annotations

import json
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Union

from pydantic import ValidationError

from plantracker.errors import BackupFormatError
from plantracker.schemas import (
    CheckIn,
    CheckInIn,
    HistoryEntry,
    Intensity,
    WorkoutDay,
    WorkoutDayIn,
    WorkoutStatus,
    utcnow_iso,
)

ICAL_PRODID = "-//Plan Tracker//Training Plan//EN"
ICAL_LINE_LIMIT = 75


# -----------------------------------------------------------------------------
# iCalendar
# -----------------------------------------------------------------------------
def ical_escape(text: str) -> str:
    return (
        text.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\r\n", "\\n")
        .replace("\n", "\\n")
    )


def _fold(line: str) -> List[str]:
    """Split a content line into 75-octet chunks, continuations prefixed by a space."""
    out: List[str] = []
    current = ""
    size = 0
    for ch in line:
        n = len(ch.encode("utf-8"))
        if size + n > ICAL_LINE_LIMIT:
            out.append(current)
            current, size = " ", 1
        current += ch
        size += n
    out.append(current)
    return out


def _compact(day: str) -> str:
    return day.replace("-", "")


def generate_ical(workouts: Iterable[WorkoutDay]) -> str:
    """One all-day VEVENT per non-rest workout, CRLF line endings."""
    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:{ICAL_PRODID}",
        "CALSCALE:GREGORIAN",
        "METHOD:PUBLISH",
    ]
    stamp = utcnow_iso()[:19].replace("-", "").replace(":", "") + "Z"
    for w in sorted(workouts, key=lambda w: (w.date, w.created_at, w.id)):
        if w.intensity == Intensity.REST:
            continue
        next_day = (date.fromisoformat(w.date) + timedelta(days=1)).isoformat()
        status = "COMPLETED" if w.status == WorkoutStatus.COMPLETED else "CONFIRMED"
        lines += [
            "BEGIN:VEVENT",
            f"UID:{w.id}@plantracker",
            f"DTSTAMP:{stamp}",
            f"DTSTART;VALUE=DATE:{_compact(w.date)}",
            f"DTEND;VALUE=DATE:{_compact(next_day)}",
            f"SUMMARY:{ical_escape(w.title)}",
            f"DESCRIPTION:{ical_escape(w.details or '')}",
            f"STATUS:{status}",
            "END:VEVENT",
        ]
    lines.append("END:VCALENDAR")

    folded: List[str] = []
    for line in lines:
        folded.extend(_fold(line))
    return "\r\n".join(folded) + "\r\n"


# -----------------------------------------------------------------------------
# JSON backup
# -----------------------------------------------------------------------------
class Backup(NamedTuple):
    workouts: List[WorkoutDayIn]
    check_ins: List[CheckInIn]
    exported_at: Optional[str]


def build_backup(workouts: Iterable[WorkoutDay], check_ins: Iterable[CheckIn],
                 history: Optional[Iterable[HistoryEntry]] = None,
                 exported_at: Optional[str] = None) -> Dict[str, Any]:
    doc: Dict[str, Any] = {
        "exportedAt": exported_at or utcnow_iso(),
        "workouts": [w.model_dump(mode="json") for w in workouts],
        "checkIns": [c.model_dump(mode="json") for c in check_ins],
    }
    if history is not None:
        doc["history"] = [h.model_dump(mode="json") for h in history]
    return doc


def dump_backup(doc: Dict[str, Any]) -> str:
    return json.dumps(doc, indent=2)


def _validation_message(e: ValidationError) -> str:
    first = e.errors()[0]
    where = ".".join(str(p) for p in first.get("loc", ()))
    return f"{where}: {first.get('msg')}" if where else str(first.get("msg"))


def parse_backup(payload: Union[str, bytes, Dict[str, Any]]) -> Backup:
    """Parse and fully validate a backup document.

    Raises BackupFormatError on anything unusable, before the caller touches
    persisted data. Ids and timestamps in the document are ignored.
    """
    if isinstance(payload, (str, bytes)):
        try:
            doc = json.loads(payload)
        except ValueError as e:
            raise BackupFormatError(f"Backup is not valid JSON: {e}") from e
    else:
        doc = payload

    if not isinstance(doc, dict):
        raise BackupFormatError("Backup must be a JSON object")
    raw_workouts = doc.get("workouts")
    if not isinstance(raw_workouts, list):
        raise BackupFormatError("Backup is missing the 'workouts' array")
    raw_check_ins = doc.get("checkIns") or []
    if not isinstance(raw_check_ins, list):
        raise BackupFormatError("'checkIns' must be an array")

    workouts: List[WorkoutDayIn] = []
    for i, raw in enumerate(raw_workouts):
        try:
            workouts.append(WorkoutDayIn.model_validate(raw))
        except ValidationError as e:
            raise BackupFormatError(f"Invalid workout at index {i}: {_validation_message(e)}") from e

    check_ins: List[CheckInIn] = []
    for i, raw in enumerate(raw_check_ins):
        try:
            check_ins.append(CheckInIn.model_validate(raw))
        except ValidationError as e:
            raise BackupFormatError(f"Invalid check-in at index {i}: {_validation_message(e)}") from e

    return Backup(workouts=workouts, check_ins=check_ins, exported_at=doc.get("exportedAt"))
