"""
Database Schemas for the School Results API

Each Pydantic model represents a collection (or an embedded document) in MongoDB.
The collection name is the lowercase of the class name. TermFee and Result are
embedded in Student and keyed informally by (term, year).
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Literal
from datetime import datetime

TermName = Literal["1st", "2nd", "3rd"]
PaymentMethod = Literal["cash", "bank_transfer", "online", "check", "mobile_money"]
ScaleSet = Literal["primary", "secondary"]

TERMS = ("1st", "2nd", "3rd")


class Payment(BaseModel):
    amount: float = Field(..., gt=0, description="Amount received")
    payment_date: datetime = Field(..., description="When the payment was recorded")
    payment_method: PaymentMethod = Field("cash", description="How the fee was paid")
    receipt_number: str = Field(..., description="Receipt reference")
    updated_by: Optional[str] = Field(None, description="Staff user who recorded it")


class TermFee(BaseModel):
    term: TermName = Field(..., description="1st|2nd|3rd")
    year: int = Field(..., description="Academic year")
    amount: float = Field(..., ge=0, description="Total fee required for the term")
    amount_paid: float = Field(0, ge=0, description="Paid so far")
    paid: bool = Field(False, description="True once amount_paid >= amount")
    pin_code: str = Field(..., description="PIN gating public result viewing")
    viewable: bool = Field(False, description="Publish flag set by staff, independent of paid")
    payment_history: List[Payment] = Field(default_factory=list)
    payment_date: Optional[datetime] = None
    payment_method: Optional[PaymentMethod] = None
    receipt_number: Optional[str] = None
    updated_by: Optional[str] = None


class Assessments(BaseModel):
    ca1: float = Field(0, ge=0, le=20, description="First continuous assessment")
    ca2: float = Field(0, ge=0, le=20, description="Second continuous assessment")
    exam: float = Field(0, ge=0, le=60, description="Examination")


class SubjectScore(BaseModel):
    subject: str
    assessments: Assessments
    total_score: float = Field(..., ge=0, le=100, description="ca1 + ca2 + exam")


class Result(BaseModel):
    term: TermName
    year: int
    scores: List[SubjectScore]
    comment: str = ""
    updated_by: str
    updated_at: datetime
    version: int = Field(1, ge=1, description="Incremented on every write")


class Student(BaseModel):
    student_id: str = Field(..., description="School-issued student number")
    full_name: str = Field(..., description="Full name")
    current_class: str = Field(..., description="Class, e.g. Primary 4, JSS2, SS1")
    user_id: Optional[str] = Field(None, description="Login account of the student")
    parent_id: Optional[str] = Field(None, description="Login account of the parent")
    classroom_id: Optional[str] = None
    term_fees: List[TermFee] = Field(default_factory=list)
    results: List[Result] = Field(default_factory=list)


class GradingScale(BaseModel):
    min: float = Field(..., ge=0, le=100)
    max: float = Field(..., ge=0, le=100)
    grade: str
    remark: str
    scale_set: ScaleSet = Field(..., description="primary (A-F) or secondary (A1-F9)")


class Holiday(BaseModel):
    name: str
    start_date: datetime
    end_date: datetime


class Term(BaseModel):
    name: TermName
    year: int
    start_date: datetime
    end_date: datetime
    is_active: bool = False
    holidays: List[Holiday] = Field(default_factory=list)


class AuditLog(BaseModel):
    actor: str = Field(..., description="User id or 'anonymous'")
    action: str
    target_id: Optional[str] = None
    description: str
    timestamp: datetime
