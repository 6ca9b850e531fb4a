"""
Grade lookup over banded grading scales.

Two scale sets live side by side in the ``gradingscale`` collection: the
primary A-F bands and the secondary A1-F9 bands. Every band is tagged with
its ``scale_set`` and callers filter to one set before resolving.
"""
import logging
import math
import re
from typing import Any, Dict, Iterable, List, NamedTuple, Optional

from config import FAILING_GRADES
from errors import UnresolvedGrade

logger = logging.getLogger(__name__)

PRIMARY = "primary"
SECONDARY = "secondary"

DEFAULT_GRADING_SCALES = [
    {"min": 70, "max": 100, "grade": "A", "remark": "Excellent", "scale_set": PRIMARY},
    {"min": 60, "max": 69, "grade": "B", "remark": "Very Good", "scale_set": PRIMARY},
    {"min": 50, "max": 59, "grade": "C", "remark": "Good", "scale_set": PRIMARY},
    {"min": 45, "max": 49, "grade": "D", "remark": "Pass", "scale_set": PRIMARY},
    {"min": 40, "max": 44, "grade": "E", "remark": "Fair", "scale_set": PRIMARY},
    {"min": 0, "max": 39, "grade": "F", "remark": "Fail", "scale_set": PRIMARY},
    {"min": 75, "max": 100, "grade": "A1", "remark": "Excellent", "scale_set": SECONDARY},
    {"min": 70, "max": 74, "grade": "B2", "remark": "Very Good", "scale_set": SECONDARY},
    {"min": 65, "max": 69, "grade": "B3", "remark": "Good", "scale_set": SECONDARY},
    {"min": 60, "max": 64, "grade": "C4", "remark": "Credit", "scale_set": SECONDARY},
    {"min": 55, "max": 59, "grade": "C5", "remark": "Credit", "scale_set": SECONDARY},
    {"min": 50, "max": 54, "grade": "C6", "remark": "Credit", "scale_set": SECONDARY},
    {"min": 45, "max": 49, "grade": "D7", "remark": "Pass", "scale_set": SECONDARY},
    {"min": 40, "max": 44, "grade": "E8", "remark": "Pass", "scale_set": SECONDARY},
    {"min": 0, "max": 39, "grade": "F9", "remark": "Fail", "scale_set": SECONDARY},
]

_SECONDARY_CLASS = re.compile(r"^(JSS|SSS|SS)\d*$")

GRADE_POINTS = {
    "A1": 5.0, "B2": 4.0, "B3": 3.0,
    "C4": 2.0, "C5": 2.0, "C6": 2.0,
    "D7": 1.0, "E8": 1.0, "F9": 0.0,
}


class GradeResult(NamedTuple):
    grade: str
    remark: str


def resolve_grade(score: float, scales: List[Dict[str, Any]]) -> GradeResult:
    """Return the grade and remark of the first band containing ``score``.

    Scores outside 0-100 fail closed to the lowest band. A fractional score
    falling between integer band edges (69.5 between 60-69 and 70-100) takes
    the band of its whole part. Raises UnresolvedGrade when no band contains
    an in-range score.
    """
    if not scales:
        raise UnresolvedGrade(score)
    if not math.isfinite(score) or score < 0 or score > 100:
        lowest = min(scales, key=lambda band: band["min"])
        return GradeResult(lowest["grade"], lowest["remark"])
    for candidate in (score, math.floor(score)):
        for band in scales:
            if band["min"] <= candidate <= band["max"]:
                return GradeResult(band["grade"], band["remark"])
    raise UnresolvedGrade(score)


def is_passing_grade(grade: str, failing_grades: Iterable[str] = FAILING_GRADES) -> bool:
    return grade not in set(failing_grades)


def scales_for(scales: List[Dict[str, Any]], scale_set: str) -> List[Dict[str, Any]]:
    return [band for band in scales if band.get("scale_set") == scale_set]


def scale_set_for_class(current_class: Optional[str]) -> str:
    """JSS/SS classes grade on the secondary scale, everything else on primary."""
    key = re.sub(r"[^A-Za-z0-9]+", "", (current_class or "").strip()).upper()
    return SECONDARY if _SECONDARY_CLASS.match(key) else PRIMARY


def annotate_result(result: Dict[str, Any], scales: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Copy of ``result`` with grade and remark added to every subject score.

    Secondary grades (A1-F9) also carry their ``grade_point``.
    """
    annotated = dict(result)
    scores = []
    for entry in result.get("scores", []):
        entry = dict(entry)
        try:
            grade = resolve_grade(entry.get("total_score", 0), scales)
        except UnresolvedGrade:
            # gap in the band set: treat as a fail
            logger.warning("No grading band for %s score %s", entry.get("subject"), entry.get("total_score"))
            grade = resolve_grade(-1, scales) if scales else GradeResult("", "")
        entry["grade"] = grade.grade
        entry["remark"] = grade.remark
        if grade.grade in GRADE_POINTS:
            entry["grade_point"] = GRADE_POINTS[grade.grade]
        scores.append(entry)
    annotated["scores"] = scores
    return annotated


def pass_rate(annotated_results: Iterable[Dict[str, Any]]) -> float:
    """Share (0-100) of graded subject scores that earn a passing grade."""
    total = 0
    passed = 0
    for result in annotated_results:
        for entry in result.get("scores", []):
            total += 1
            if is_passing_grade(entry["grade"]):
                passed += 1
    if total == 0:
        return 0.0
    return round(passed / total * 100, 2)


def average_grade_point(annotated_results: Iterable[Dict[str, Any]]) -> float:
    """Mean grade point over the secondary-graded subjects, 0 when there are none."""
    points = [
        entry["grade_point"]
        for result in annotated_results
        for entry in result.get("scores", [])
        if entry.get("grade_point") is not None
    ]
    if not points:
        return 0.0
    return round(sum(points) / len(points), 2)
