import os
import logging
from typing import List, Optional, Dict, Any
from datetime import date, datetime
from fastapi import FastAPI, Depends, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from config import CORS_ORIGINS, LOG_LEVEL
from database import db, get_repository
from errors import ServiceError, Forbidden, InvalidRange, NotFound, ValidationError
from access import Requester, find_entry, load_result_for_view
from attendance import attendance_summary, resolve_attendance_student
from auth import get_optional_requester, require_role
from fees import apply_fee_structure, record_payment, regenerate_pin, set_viewable
from grading import annotate_result, average_grade_point, pass_rate, scale_set_for_class, scales_for
from school_days import holidays_within
from schemas import Student, Term, TermName, PaymentMethod, ScaleSet
from submission import submit_result

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="School Results API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def server_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"message": "Server error"})


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class VerifyIn(CamelModel):
    student_id: str = Field(..., alias="studentId")
    pin_code: str = Field(..., alias="pinCode")
    term: str
    year: int


class AssessmentsIn(BaseModel):
    ca1: float = 0
    ca2: float = 0
    exam: float = 0


class ScoreIn(CamelModel):
    subject: str
    assessments: AssessmentsIn
    # Recomputed server-side from the assessments
    total_score: Optional[float] = Field(None, alias="totalScore")


class ResultIn(CamelModel):
    term: str
    year: int
    scores: List[ScoreIn]
    comment: str = ""
    version: Optional[int] = None


class StudentIn(CamelModel):
    student_id: str = Field(..., alias="studentId")
    full_name: str = Field(..., alias="fullName")
    current_class: str = Field(..., alias="currentClass")
    user_id: Optional[str] = Field(None, alias="userId")
    parent_id: Optional[str] = Field(None, alias="parentId")
    classroom_id: Optional[str] = Field(None, alias="classroomId")


class FeeApplyIn(CamelModel):
    classroom_id: str = Field(..., alias="classroomId")
    term: str
    year: int
    amount: float


class PaymentIn(CamelModel):
    term: str
    year: int
    amount: float
    payment_method: PaymentMethod = Field("cash", alias="paymentMethod")
    receipt_number: Optional[str] = Field(None, alias="receiptNumber")


class ViewableIn(BaseModel):
    term: str
    year: int
    viewable: bool


class TermRef(BaseModel):
    term: str
    year: int


class HolidayIn(CamelModel):
    name: str
    start_date: datetime = Field(..., alias="startDate")
    end_date: datetime = Field(..., alias="endDate")


class TermIn(CamelModel):
    name: TermName
    year: int
    start_date: datetime = Field(..., alias="startDate")
    end_date: datetime = Field(..., alias="endDate")
    is_active: bool = Field(False, alias="isActive")
    holidays: List[HolidayIn] = Field(default_factory=list)


@app.get("/")
def root():
    return {"message": "School Results API"}


@app.get("/test")
def test_database():
    resp = {
        "backend": "Running",
        "database": "Not Connected",
        "collections": []
    }
    try:
        if db is not None:
            resp["database"] = "Connected"
            resp["collections"] = db.list_collection_names()
    except Exception as e:
        resp["error"] = str(e)
    return resp


# Public result checker: the PIN is the credential
@app.post("/student/results/verify")
def verify_and_get_results(payload: VerifyIn,
                           requester: Optional[Requester] = Depends(get_optional_requester),
                           repo=Depends(get_repository)):
    student, result = load_result_for_view(repo, payload.student_id, payload.term, payload.year,
                                           payload.pin_code, requester)
    scale_set = scale_set_for_class(student.get("current_class"))
    return annotate_result(result, repo.grading_scales(scale_set))


def _ensure_assigned(repo, requester: Requester, student_id: str):
    if requester.role == "teacher" and not repo.classroom_for_teacher(requester.user_id, student_id):
        raise Forbidden("You don't have permission to manage results for this student", reason="not_assigned")


@app.put("/teacher/students/{student_id}/results")
def put_student_results(student_id: str, payload: ResultIn,
                        requester: Requester = Depends(require_role("teacher", "admin")),
                        repo=Depends(get_repository)):
    _ensure_assigned(repo, requester, student_id)
    if repo.has_terms():
        term = repo.find_term(payload.term, payload.year)
        if not term or not term.get("is_active"):
            raise ValidationError("Invalid or inactive term", reason="term_inactive")
    scores = [s.model_dump(include={"subject", "assessments"}) for s in payload.scores]
    return submit_result(repo, student_id, payload.term, payload.year, scores, payload.comment,
                         requester.user_id, expected_version=payload.version)


@app.get("/teacher/students/{student_id}/results")
def get_student_results(student_id: str,
                        requester: Requester = Depends(require_role("teacher", "admin")),
                        repo=Depends(get_repository)):
    _ensure_assigned(repo, requester, student_id)
    student = repo.find_student(student_id)
    if not student:
        raise NotFound("Student not found", reason="student_not_found")
    return {
        "student_id": student["student_id"],
        "full_name": student.get("full_name"),
        "results": student.get("results", []),
    }


@app.get("/student/attendance")
def get_attendance(start_date: date = Query(..., alias="startDate"),
                   end_date: date = Query(..., alias="endDate"),
                   student_id: Optional[str] = Query(None, alias="studentId"),
                   requester: Requester = Depends(require_role("student", "parent")),
                   repo=Depends(get_repository)):
    target = resolve_attendance_student(requester, student_id)
    return attendance_summary(repo, target, start_date, end_date)


@app.post("/admin/students")
def create_student(payload: StudentIn,
                   requester: Requester = Depends(require_role("admin")),
                   repo=Depends(get_repository)):
    if repo.find_student(payload.student_id):
        raise ValidationError("Student ID already exists", reason="duplicate_student")
    data = Student(**payload.model_dump()).model_dump()
    doc_id = repo.insert_student(data)
    return {"id": doc_id, **data}


@app.post("/admin/fees/apply")
def apply_fees(payload: FeeApplyIn,
               requester: Requester = Depends(require_role("admin")),
               repo=Depends(get_repository)):
    return apply_fee_structure(repo, payload.classroom_id, payload.term, payload.year,
                               payload.amount, requester.user_id)


@app.post("/admin/students/{student_id}/fees/pay")
def pay_fees(student_id: str, payload: PaymentIn,
             requester: Requester = Depends(require_role("admin")),
             repo=Depends(get_repository)):
    fee = record_payment(repo, student_id, payload.term, payload.year, payload.amount,
                         payload.payment_method, payload.receipt_number, requester.user_id)
    return {"term_fee": fee, "remaining_balance": fee["amount"] - fee["amount_paid"], "is_fully_paid": fee["paid"]}


@app.put("/admin/students/{student_id}/fees/viewable")
def publish_results(student_id: str, payload: ViewableIn,
                    requester: Requester = Depends(require_role("admin")),
                    repo=Depends(get_repository)):
    return set_viewable(repo, student_id, payload.term, payload.year, payload.viewable, requester.user_id)


@app.post("/admin/students/{student_id}/fees/pin")
def new_pin(student_id: str, payload: TermRef,
            requester: Requester = Depends(require_role("admin")),
            repo=Depends(get_repository)):
    return regenerate_pin(repo, student_id, payload.term, payload.year, requester.user_id)


@app.post("/admin/terms")
def create_term(payload: TermIn,
                requester: Requester = Depends(require_role("admin")),
                repo=Depends(get_repository)):
    if payload.end_date < payload.start_date:
        raise InvalidRange("End date must not be before start date")
    data = Term(**payload.model_dump()).model_dump()
    holidays_within(data)
    if repo.find_term(data["name"], data["year"]):
        raise ValidationError("Term already exists", reason="duplicate_term")
    term_id = repo.insert_term(data)
    return {"id": term_id, **data}


@app.get("/admin/classrooms/{classroom_id}/analytics")
def classroom_analytics(classroom_id: str,
                        term: TermName = Query(...),
                        year: int = Query(...),
                        requester: Requester = Depends(require_role("teacher", "admin")),
                        repo=Depends(get_repository)):
    classroom = repo.find_classroom(classroom_id)
    if not classroom:
        raise NotFound("Classroom not found", reason="classroom_not_found")
    if requester.role == "teacher" and classroom.get("teacher_id") != requester.user_id:
        raise Forbidden("You don't have permission to view this classroom", reason="not_assigned")

    scales_by_set = {}
    graded = []
    for student in repo.students_in_classroom(classroom_id):
        result = find_entry(student.get("results"), term, year)
        if not result:
            continue
        scale_set = scale_set_for_class(student.get("current_class"))
        if scale_set not in scales_by_set:
            scales_by_set[scale_set] = repo.grading_scales(scale_set)
        graded.append(annotate_result(result, scales_by_set[scale_set]))

    return {
        "classroom_id": classroom_id,
        "term": term,
        "year": year,
        "students_with_results": len(graded),
        "pass_rate": pass_rate(graded),
        "average_grade_point": average_grade_point(graded),
    }


@app.get("/grading-scales")
def list_grading_scales(scale_set: Optional[ScaleSet] = Query(None, alias="scaleSet"),
                        repo=Depends(get_repository)) -> List[Dict[str, Any]]:
    scales = repo.grading_scales()
    return scales_for(scales, scale_set) if scale_set else scales


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
