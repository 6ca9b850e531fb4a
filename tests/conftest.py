import copy
import os
import sys
from datetime import datetime

import pytest

os.environ.setdefault("JWT_SECRET", "test-secret-key-for-the-suite")

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from access import find_entry  # noqa: E402
from grading import DEFAULT_GRADING_SCALES  # noqa: E402


class InMemoryRepository:
    """Stand-in for MongoRepository keeping every collection in dicts/lists."""

    def __init__(self):
        self.students = {}
        self.classrooms = {}
        self.users = {}
        self.terms = []
        self.attendance = []
        self.scales = []
        self.audit = []

    # Students

    def find_student(self, student_id):
        doc = self.students.get(student_id)
        return copy.deepcopy(doc) if doc else None

    def insert_student(self, data):
        self.students[data["student_id"]] = copy.deepcopy(data)
        return f"oid-{data['student_id']}"

    def students_in_classroom(self, classroom_id):
        classroom = self.classrooms.get(classroom_id)
        if not classroom:
            return []
        return [self.find_student(s) for s in classroom["students"] if s in self.students]

    def save_result(self, student_id, result, expected_version):
        student = self.students.get(student_id)
        if student is None:
            return False
        results = student.setdefault("results", [])
        existing = find_entry(results, result["term"], result["year"])
        current = existing.get("version", 1) if existing else 0
        if expected_version is not None and expected_version != current:
            return False
        if existing:
            results[results.index(existing)] = copy.deepcopy(result)
        else:
            results.append(copy.deepcopy(result))
        return True

    def save_term_fee(self, student_id, fee):
        fees = self.students[student_id].setdefault("term_fees", [])
        existing = find_entry(fees, fee["term"], fee["year"])
        if existing:
            fees[fees.index(existing)] = copy.deepcopy(fee)
        else:
            fees.append(copy.deepcopy(fee))

    # Grading scales

    def grading_scales(self, scale_set=None):
        return [dict(b) for b in self.scales if not scale_set or b["scale_set"] == scale_set]

    def replace_grading_scales(self, entries):
        self.scales = [dict(e) for e in entries]
        return len(self.scales)

    # Terms, classrooms, users

    def find_term(self, name, year):
        return next((t for t in self.terms if t["name"] == name and t["year"] == year), None)

    def has_terms(self):
        return bool(self.terms)

    def terms_overlapping(self, start, end):
        return [t for t in self.terms if t["start_date"] <= end and t["end_date"] >= start]

    def insert_term(self, data):
        self.terms.append(dict(data))
        return f"term-{len(self.terms)}"

    def find_classroom(self, classroom_id):
        return self.classrooms.get(classroom_id)

    def classroom_for_teacher(self, teacher_id, student_id):
        return next(
            (c for c in self.classrooms.values() if c.get("teacher_id") == teacher_id and student_id in c["students"]),
            None,
        )

    def find_user(self, user_id):
        return self.users.get(user_id)

    # Attendance and audit

    def attendance_for(self, student_id, start, end):
        rows = [
            a for a in self.attendance
            if start <= a["date"] <= end and any(r["student_id"] == student_id for r in a["records"])
        ]
        return sorted(rows, key=lambda a: a["date"], reverse=True)

    def add_audit(self, entry):
        self.audit.append(dict(entry))
        return str(len(self.audit))


def make_student(student_id="STU001", current_class="Primary 4", **extra):
    doc = {
        "student_id": student_id,
        "full_name": "Ada Obi",
        "current_class": current_class,
        "term_fees": [],
        "results": [],
    }
    doc.update(extra)
    return doc


def make_fee(term="1st", year=2025, paid=True, pin_code="1234", viewable=True, amount=50000, **extra):
    fee = {
        "term": term,
        "year": year,
        "amount": amount,
        "amount_paid": amount if paid else 0,
        "paid": paid,
        "pin_code": pin_code,
        "viewable": viewable,
        "payment_history": [],
    }
    fee.update(extra)
    return fee


def make_result(term="1st", year=2025, score=85, comment="Great job!", version=1):
    return {
        "term": term,
        "year": year,
        "scores": [
            {"subject": "Math", "assessments": {"ca1": 15, "ca2": 15, "exam": score - 30}, "total_score": score}
        ],
        "comment": comment,
        "updated_by": "teacher-1",
        "updated_at": datetime(2025, 3, 1, 9, 0),
        "version": version,
    }


@pytest.fixture
def repo():
    repository = InMemoryRepository()
    repository.scales = [dict(b) for b in DEFAULT_GRADING_SCALES]
    return repository


@pytest.fixture
def seeded_repo(repo):
    repo.students["STU001"] = make_student(term_fees=[make_fee()], results=[make_result()])
    return repo


@pytest.fixture
def client(repo):
    from fastapi.testclient import TestClient

    from database import get_repository
    from main import app

    app.dependency_overrides[get_repository] = lambda: repo
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def token_for():
    from auth import create_access_token

    def _make(user_id, role):
        return {"Authorization": f"Bearer {create_access_token({'sub': user_id, 'role': role})}"}

    return _make
