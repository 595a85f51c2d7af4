"""
Attendance summaries and spreadsheet builders used by the attendance and
export routers.
"""

import csv
import io
from collections import OrderedDict
from datetime import datetime
from typing import Any, Dict, Iterable, List, Sequence

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font

from attendance_server.schemas import ATTENDED_STATUSES, STATUS_CODES, AttendanceStatus

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
CSV_MEDIA_TYPE = "text/csv"


def percentage(attended: int, total: int) -> float:
    if total == 0:
        return 0.0
    return round(attended / total * 100.0, 2)


def summarize(records: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    counts = {status.value: 0 for status in AttendanceStatus}
    total = 0
    for record in records:
        counts[record["status"]] = counts.get(record["status"], 0) + 1
        total += 1
    attended = sum(counts[s] for s in ATTENDED_STATUSES)
    return {"total": total, **counts, "percentage": percentage(attended, total)}


def summarize_by_section(records: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
    grouped: "OrderedDict[Any, List[Dict[str, Any]]]" = OrderedDict()
    for record in records:
        grouped.setdefault(record["sectionId"], []).append(record)
    return [{"sectionId": str(section_id), **summarize(items)} for section_id, items in grouped.items()]


def day_label(value: datetime) -> str:
    return value.strftime("%Y-%m-%d")


def section_matrix(students: Sequence[Dict[str, Any]], records: Sequence[Dict[str, Any]]) -> List[List[Any]]:
    """One row per student, one column per meeting day."""
    days = sorted({record["date"] for record in records})
    by_cell = {(record["studentId"], record["date"]): record["status"] for record in records}

    rows: List[List[Any]] = [["Student ID", "Name", "Email"] + [day_label(d) for d in days] + ["Attended", "Percentage"]]
    for student in students:
        statuses = [by_cell.get((student["_id"], d)) for d in days]
        recorded = [s for s in statuses if s is not None]
        attended = sum(1 for s in recorded if s in ATTENDED_STATUSES)
        rows.append(
            [student.get("studentId") or "", student.get("name", ""), student.get("email", "")]
            + [STATUS_CODES.get(s, "") if s else "" for s in statuses]
            + [attended, percentage(attended, len(recorded))]
        )
    return rows


def student_rows(
    records: Sequence[Dict[str, Any]],
    classes: Dict[Any, Dict[str, Any]],
    sections: Dict[Any, Dict[str, Any]],
) -> List[List[Any]]:
    rows: List[List[Any]] = [["Date", "Class", "Section", "Status", "Method"]]
    for record in records:
        cls = classes.get(record["classId"], {})
        section = sections.get(record["sectionId"], {})
        rows.append([
            day_label(record["date"]),
            cls.get("code", ""),
            section.get("sectionNumber", ""),
            record["status"],
            record.get("method", ""),
        ])
    return rows


def to_xlsx(rows: Sequence[Sequence[Any]], title: str) -> io.BytesIO:
    wb = Workbook()
    ws = wb.active
    # sheet titles are capped at 31 characters
    ws.title = title[:31]

    for row in rows:
        ws.append(list(row))
    for cell in ws[1]:
        cell.font = Font(bold=True)
        cell.alignment = Alignment(horizontal="center")

    out = io.BytesIO()
    wb.save(out)
    out.seek(0)
    return out


def to_csv(rows: Sequence[Sequence[Any]]) -> io.BytesIO:
    text = io.StringIO()
    writer = csv.writer(text)
    writer.writerows(rows)
    return io.BytesIO(text.getvalue().encode("utf-8"))
