"""
Term fee records: applying a class fee, recording payments, publishing
results and issuing result PINs.
"""
import logging
import secrets
import time
from datetime import datetime
from typing import Any, Dict, Optional

from access import find_entry
from audit import record_audit
from config import PIN_LENGTH
from errors import NotFound, ValidationError
from schemas import TERMS, Payment, TermFee

logger = logging.getLogger(__name__)


def generate_pin(length: int = PIN_LENGTH) -> str:
    return "".join(secrets.choice("0123456789") for _ in range(length))


def _check_term(term: str):
    if term not in TERMS:
        raise ValidationError(f"Invalid term {term}", reason="invalid_term")


def _load_fee(repo, student_id: str, term: str, year: int):
    student = repo.find_student(student_id)
    if not student:
        raise NotFound("Student not found", reason="student_not_found")
    fee = find_entry(student.get("term_fees"), term, year)
    if not fee:
        raise NotFound("Term fee record not found", reason="term_record_not_found")
    return student, dict(fee)


def apply_fee_structure(repo, classroom_id: str, term: str, year: int, amount: float,
                        actor: Optional[str]) -> Dict[str, int]:
    """Give every student in a classroom a fee record for (term, year).

    Existing records keep their PIN and payments; only the amount changes and
    ``paid`` is re-evaluated against it.
    """
    _check_term(term)
    if amount is None or amount < 0:
        raise ValidationError("Fee amount cannot be negative", reason="invalid_payment")

    created = updated = 0
    for student in repo.students_in_classroom(classroom_id):
        fee = find_entry(student.get("term_fees"), term, year)
        if fee:
            fee = dict(fee)
            fee["amount"] = amount
            fee["paid"] = fee.get("amount_paid", 0) >= amount
            fee["updated_by"] = actor
            updated += 1
        else:
            fee = TermFee(term=term, year=year, amount=amount, pin_code=generate_pin(), updated_by=actor).model_dump()
            created += 1
        repo.save_term_fee(student["student_id"], fee)

    record_audit(
        repo, actor, "FEES_UPDATE", classroom_id,
        f"Applied {term} {year} fee of {amount} ({created} created, {updated} updated)",
    )
    return {"created": created, "updated": updated}


def record_payment(repo, student_id: str, term: str, year: int, amount: float,
                   payment_method: str = "cash", receipt_number: Optional[str] = None,
                   actor: Optional[str] = None) -> Dict[str, Any]:
    """Add a (possibly partial) payment. Publication is left to staff."""
    if amount is None or amount <= 0:
        raise ValidationError("Valid payment amount is required", reason="invalid_payment")
    student, fee = _load_fee(repo, student_id, term, year)

    current = fee.get("amount_paid", 0)
    balance = fee["amount"] - current
    if amount > balance:
        raise ValidationError(f"Payment amount exceeds remaining balance. Remaining: {balance}",
                              reason="invalid_payment")

    now = datetime.utcnow()
    receipt = receipt_number or f"RCP-{int(time.time() * 1000)}-{student_id}"
    payment = Payment(amount=amount, payment_date=now, payment_method=payment_method or "cash",
                      receipt_number=receipt, updated_by=actor).model_dump()

    fee["amount_paid"] = current + amount
    fee["payment_history"] = list(fee.get("payment_history") or []) + [payment]
    fee["paid"] = fee["amount_paid"] >= fee["amount"]
    if fee["paid"]:
        fee["payment_date"] = now
        fee["payment_method"] = payment["payment_method"]
        fee["receipt_number"] = receipt
    fee["updated_by"] = actor
    repo.save_term_fee(student_id, fee)

    kind = "fully paid" if fee["paid"] else f"partial payment of {amount}"
    record_audit(
        repo, actor, "FEE_PAYMENT", student_id,
        f"Fee {kind} for {student.get('full_name', student_id)} ({term} {year}) - Receipt: {receipt} "
        f"- Balance: {fee['amount'] - fee['amount_paid']}",
    )
    return fee


def set_viewable(repo, student_id: str, term: str, year: int, viewable: bool,
                 actor: Optional[str] = None) -> Dict[str, Any]:
    _, fee = _load_fee(repo, student_id, term, year)
    fee["viewable"] = bool(viewable)
    fee["updated_by"] = actor
    repo.save_term_fee(student_id, fee)
    record_audit(repo, actor, "RESULT_PUBLISH", student_id,
                 f"Results {'published' if viewable else 'withdrawn'} ({term} {year})")
    return fee


def regenerate_pin(repo, student_id: str, term: str, year: int, actor: Optional[str] = None) -> Dict[str, Any]:
    _, fee = _load_fee(repo, student_id, term, year)
    fee["pin_code"] = generate_pin()
    fee["updated_by"] = actor
    repo.save_term_fee(student_id, fee)
    record_audit(repo, actor, "PIN_GENERATE", student_id, f"Result PIN regenerated ({term} {year})")
    return fee
