import logging
from datetime import datetime, time
from typing import Any, Dict, Optional

from access import Requester
from errors import Forbidden, NotFound
from school_days import overlapping_holidays, school_days, total_days

logger = logging.getLogger(__name__)


def resolve_attendance_student(requester: Requester, student_id: Optional[str]) -> str:
    """Pick whose attendance the caller may read.

    Students read their own record; parents must name a linked child.
    """
    if requester.role == "student":
        if not requester.linked_student_ids:
            raise NotFound("Student not found", reason="student_not_found")
        return requester.linked_student_ids[0]
    if requester.role == "parent":
        if not requester.linked_student_ids:
            raise NotFound("No linked students found", reason="student_not_found")
        if not student_id or student_id not in requester.linked_student_ids:
            raise Forbidden("Access denied to this student's records", reason="not_linked")
        return student_id
    raise Forbidden("Attendance is only available to students and parents", reason="role_not_allowed")


def attendance_summary(repo, student_id: str, start, end) -> Dict[str, Any]:
    days = total_days(start, end)
    student = repo.find_student(student_id)
    if not student:
        raise NotFound("Student not found", reason="student_not_found")

    start_dt = datetime.combine(start, time.min) if not isinstance(start, datetime) else start
    end_dt = datetime.combine(end, time.max) if not isinstance(end, datetime) else end
    holidays = overlapping_holidays(repo.terms_overlapping(start_dt, end_dt), start, end)
    expected = school_days(start, end, holidays)

    counts = {"present": 0, "absent": 0, "late": 0}
    details = []
    for record in repo.attendance_for(student_id, start_dt, end_dt):
        status = next(
            (r.get("status") for r in record.get("records", []) if r.get("student_id") == student_id),
            "absent",
        )
        if status in counts:
            counts[status] += 1
        details.append({"date": record["date"], "status": status, "marked_by": record.get("marked_by")})

    percentage = round(counts["present"] / expected * 100) if expected else 0
    return {
        "student": {"student_id": student["student_id"], "full_name": student.get("full_name")},
        "total_days": days,
        "school_days": expected,
        "present_days": counts["present"],
        "absent_days": counts["absent"],
        "late_days": counts["late"],
        "percentage": percentage,
        "attendance": details,
    }
