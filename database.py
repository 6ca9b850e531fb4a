import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from pymongo import MongoClient
from bson import ObjectId

from config import DATABASE_URL, DATABASE_NAME

logger = logging.getLogger(__name__)

client = None
_db = None

try:
    client = MongoClient(DATABASE_URL)
    _db = client[DATABASE_NAME]
except Exception:
    logger.exception("Could not create MongoDB client for %s", DATABASE_URL)
    client = None
    _db = None

# Expose db for other modules
db = _db


def _to_str_id(doc: Dict[str, Any]) -> Dict[str, Any]:
    if not doc:
        return doc
    doc = dict(doc)
    if doc.get("_id"):
        doc["id"] = str(doc["_id"])
        del doc["_id"]
    return doc


def _entry_filter(term: str, year: int, **extra) -> Dict[str, Any]:
    return {"$elemMatch": {"term": term, "year": year, **extra}}


class MongoRepository:
    """Per-entity access to the school collections.

    Students embed ``term_fees`` and ``results``; every write to them goes
    through a single ``update_one`` on the student document so the store's
    per-document atomicity is the only serialization point.
    """

    def __init__(self, database):
        if database is None:
            raise RuntimeError("Database not initialized")
        self.db = database

    # Students

    def find_student(self, student_id: str) -> Optional[Dict[str, Any]]:
        return _to_str_id(self.db["student"].find_one({"student_id": student_id}))

    def insert_student(self, data: Dict[str, Any]) -> str:
        data = dict(data)
        now = datetime.utcnow()
        data.setdefault("created_at", now)
        data["updated_at"] = now
        result = self.db["student"].insert_one(data)
        return str(result.inserted_id)

    def students_in_classroom(self, classroom_id: str) -> List[Dict[str, Any]]:
        classroom = self.find_classroom(classroom_id)
        if not classroom:
            return []
        cursor = self.db["student"].find({"student_id": {"$in": classroom.get("students", [])}})
        return [_to_str_id(doc) for doc in cursor]

    def _replace_result(self, student_id, result, guard):
        outcome = self.db["student"].update_one(
            {"student_id": student_id, "results": _entry_filter(result["term"], result["year"], **guard)},
            {"$set": {"results.$": result, "updated_at": datetime.utcnow()}},
        )
        return outcome.matched_count > 0

    def _append_result(self, student_id, result):
        outcome = self.db["student"].update_one(
            {"student_id": student_id, "results": {"$not": _entry_filter(result["term"], result["year"])}},
            {"$push": {"results": result}, "$set": {"updated_at": datetime.utcnow()}},
        )
        return outcome.matched_count > 0

    def save_result(self, student_id: str, result: Dict[str, Any], expected_version: Optional[int]) -> bool:
        """Replace or append the (term, year) result of a student.

        ``expected_version`` None means last writer wins. Otherwise the stored
        version must still equal it (0 meaning no result yet); returns False
        when it does not.
        """
        if expected_version is None:
            return (
                self._replace_result(student_id, result, {})
                or self._append_result(student_id, result)
                or self._replace_result(student_id, result, {})
            )
        if expected_version == 0:
            return self._append_result(student_id, result)
        guard = {"version": expected_version}
        if expected_version == 1:
            # results written before versioning have no version field
            guard = {"$or": [guard, {"version": {"$exists": False}}]}
        return self._replace_result(student_id, result, guard)

    def save_term_fee(self, student_id: str, fee: Dict[str, Any]) -> None:
        term, year = fee["term"], fee["year"]
        outcome = self.db["student"].update_one(
            {"student_id": student_id, "term_fees": _entry_filter(term, year)},
            {"$set": {"term_fees.$": fee, "updated_at": datetime.utcnow()}},
        )
        if outcome.matched_count == 0:
            self.db["student"].update_one(
                {"student_id": student_id},
                {"$push": {"term_fees": fee}, "$set": {"updated_at": datetime.utcnow()}},
            )

    # Grading scales

    def grading_scales(self, scale_set: Optional[str] = None) -> List[Dict[str, Any]]:
        flt = {"scale_set": scale_set} if scale_set else {}
        cursor = self.db["gradingscale"].find(flt, {"_id": 0}).sort("_id", 1)
        return list(cursor)

    def replace_grading_scales(self, entries: List[Dict[str, Any]]) -> int:
        self.db["gradingscale"].delete_many({})
        result = self.db["gradingscale"].insert_many([dict(e) for e in entries])
        return len(result.inserted_ids)

    # Terms, classrooms, users

    def find_term(self, name: str, year: int) -> Optional[Dict[str, Any]]:
        return _to_str_id(self.db["term"].find_one({"name": name, "year": year}))

    def has_terms(self) -> bool:
        return self.db["term"].count_documents({}, limit=1) > 0

    def terms_overlapping(self, start: datetime, end: datetime) -> List[Dict[str, Any]]:
        cursor = self.db["term"].find({"start_date": {"$lte": end}, "end_date": {"$gte": start}})
        return [_to_str_id(doc) for doc in cursor]

    def insert_term(self, data: Dict[str, Any]) -> str:
        result = self.db["term"].insert_one(dict(data))
        return str(result.inserted_id)

    def find_classroom(self, classroom_id: str) -> Optional[Dict[str, Any]]:
        try:
            doc = self.db["classroom"].find_one({"_id": ObjectId(classroom_id)})
        except Exception:
            return None
        return _to_str_id(doc) if doc else None

    def classroom_for_teacher(self, teacher_id: str, student_id: str) -> Optional[Dict[str, Any]]:
        return _to_str_id(self.db["classroom"].find_one({"teacher_id": teacher_id, "students": student_id}))

    def find_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        try:
            doc = self.db["user"].find_one({"_id": ObjectId(user_id)})
        except Exception:
            return None
        return _to_str_id(doc) if doc else None

    # Attendance and audit

    def attendance_for(self, student_id: str, start: datetime, end: datetime) -> List[Dict[str, Any]]:
        cursor = self.db["attendance"].find(
            {"records.student_id": student_id, "date": {"$gte": start, "$lte": end}}
        ).sort("date", -1)
        return [_to_str_id(doc) for doc in cursor]

    def add_audit(self, entry: Dict[str, Any]) -> str:
        result = self.db["auditlog"].insert_one(dict(entry))
        return str(result.inserted_id)


def get_repository() -> MongoRepository:
    return MongoRepository(db)
