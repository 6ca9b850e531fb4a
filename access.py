"""
Result disclosure gate.

A result is disclosed only when the supplied PIN matches the term fee record,
the fee is paid and staff have published the results. The checks run in a
fixed order: a wrong PIN is reported before anything about payment or
publication so that a PIN guess reveals nothing else.
"""
import hmac
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from audit import record_audit
from errors import Forbidden, NotFound

logger = logging.getLogger(__name__)

RESULT_VIEW = "RESULT_VIEW"
RESTRICTED_ROLES = ("parent", "student")


@dataclass(frozen=True)
class Requester:
    user_id: str
    role: str
    linked_student_ids: Tuple[str, ...] = field(default_factory=tuple)


def find_entry(entries, term: str, year: int) -> Optional[Dict[str, Any]]:
    for entry in entries or []:
        if entry.get("term") == term and entry.get("year") == year:
            return entry
    return None


def pin_matches(supplied: Optional[str], stored: Optional[str]) -> bool:
    if supplied is None or stored is None:
        return False
    return hmac.compare_digest(str(supplied).encode(), str(stored).encode())


def check_ownership(requester: Optional[Requester], student_id: str) -> None:
    """Parents and students may only reach records linked to their account."""
    if requester is None or requester.role not in RESTRICTED_ROLES:
        return
    if student_id not in requester.linked_student_ids:
        raise Forbidden("Access denied to this student's records", reason="not_linked")


def _deny(error, student_id, term, year):
    logger.info("Result view denied for %s (%s %s): %s", student_id, term, year, error.reason)
    raise error


def load_result_for_view(repo, student_id: str, term: str, year: int, supplied_pin: str,
                         requester: Optional[Requester] = None) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """Run the disclosure gate and return the student together with the result."""
    check_ownership(requester, student_id)

    student = repo.find_student(student_id)
    if not student:
        _deny(NotFound("Student not found", reason="student_not_found"), student_id, term, year)

    term_fee = find_entry(student.get("term_fees"), term, year)
    if not term_fee:
        _deny(NotFound("Term record not found", reason="term_record_not_found"), student_id, term, year)

    if not pin_matches(supplied_pin, term_fee.get("pin_code")):
        _deny(Forbidden("Invalid PIN", reason="invalid_pin"), student_id, term, year)

    if term_fee.get("paid") is not True:
        _deny(Forbidden("Term fees not paid", reason="fees_not_paid"), student_id, term, year)

    if term_fee.get("viewable") is not True:
        _deny(Forbidden("Results not yet available for viewing", reason="not_published"), student_id, term, year)

    result = find_entry(student.get("results"), term, year)
    if not result:
        _deny(NotFound("No results found for this term", reason="results_not_found"), student_id, term, year)

    record_audit(
        repo,
        requester.user_id if requester else None,
        RESULT_VIEW,
        student_id,
        f"Results viewed for student {student.get('full_name', student_id)} ({term} {year})",
    )
    return student, result


def authorize_result_view(repo, student_id: str, term: str, year: int, supplied_pin: str,
                          requester: Optional[Requester] = None) -> Dict[str, Any]:
    _, result = load_result_for_view(repo, student_id, term, year, supplied_pin, requester)
    return result
