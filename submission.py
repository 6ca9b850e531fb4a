"""
Teacher result submission.

Scores are validated in full before anything is written. A submission
replaces the whole (term, year) result: subjects left out are dropped, not
merged. Callers that send the version they read get a Conflict instead of
silently overwriting a newer write.
"""
import logging
import math
from datetime import datetime
from typing import Any, Dict, List, Optional

from access import find_entry
from audit import record_audit
from errors import Conflict, NotFound, ValidationError
from schemas import TERMS, Result

logger = logging.getLogger(__name__)

SCORE_LIMITS = (("ca1", 20), ("ca2", 20), ("exam", 60))
MAX_TOTAL = 100


def _component(entry: Dict[str, Any], name: str):
    assessments = entry.get("assessments") or {}
    value = assessments.get(name, entry.get(name, 0))
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{name} for {entry.get('subject')} must be a number", reason="score_out_of_range")
    if not math.isfinite(value):
        raise ValidationError(f"{name} for {entry.get('subject')} must be a finite number", reason="score_out_of_range")
    return value


def validate_scores(scores: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Check bounds per subject and return the scores in stored form."""
    validated = []
    seen = set()
    for entry in scores:
        subject = (entry.get("subject") or "").strip()
        if not subject:
            raise ValidationError("Every score needs a subject", reason="score_out_of_range")
        if subject.lower() in seen:
            raise ValidationError(f"Duplicate subject {subject}", reason="duplicate_subject")
        seen.add(subject.lower())

        components = {}
        for name, limit in SCORE_LIMITS:
            value = _component(entry, name)
            if value < 0 or value > limit:
                raise ValidationError(
                    f"{name} for {subject} must be between 0 and {limit}", reason="score_out_of_range"
                )
            components[name] = value

        total = components["ca1"] + components["ca2"] + components["exam"]
        if total > MAX_TOTAL:
            raise ValidationError(f"total exceeds 100 for {subject}", reason="total_exceeds_100")

        validated.append({"subject": subject, "assessments": components, "total_score": total})

    if not any(any(s["assessments"].values()) for s in validated):
        raise ValidationError("no scores entered", reason="no_scores_entered")
    return validated


def submit_result(repo, student_id: str, term: str, year: int, scores: List[Dict[str, Any]],
                  comment: str, actor: str, expected_version: Optional[int] = None,
                  now: Optional[datetime] = None) -> Dict[str, Any]:
    if term not in TERMS:
        raise ValidationError(f"Invalid term {term}", reason="invalid_term")
    validated = validate_scores(scores)

    student = repo.find_student(student_id)
    if not student:
        raise NotFound("Student not found", reason="student_not_found")

    existing = find_entry(student.get("results"), term, year)
    current_version = existing.get("version", 1) if existing else 0
    if expected_version is not None and expected_version != current_version:
        raise Conflict(
            f"Result was changed since version {expected_version} (now {current_version})",
            reason="stale_result",
        )

    result = Result(
        term=term,
        year=year,
        scores=validated,
        comment=comment or "",
        updated_by=actor,
        updated_at=now or datetime.utcnow(),
        version=current_version + 1,
    ).model_dump()

    if not repo.save_result(student_id, result, expected_version):
        raise Conflict("Result was changed by another submission", reason="stale_result")

    action = "RESULT_UPDATE" if existing else "RESULT_CREATE"
    record_audit(
        repo,
        actor,
        action,
        student_id,
        f"{'Updated' if existing else 'Submitted'} results for student "
        f"{student.get('full_name', student_id)} ({term} {year})",
    )
    logger.info("Saved %s %s result v%s for %s", term, year, result["version"], student_id)
    return result
