"""
Formula engine.

Stage order is fixed: adjusted gross -> register -> unpaid -> reimbursement
-> final payable. Each stage is its own function so it can be recomputed and
compared against HR on its own.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional

from bonus_config import BASE_TIER, SPECIAL_GROSS_FACTOR
from projection import GrossRecord
from tiers import is_special


PAYMENT_UNPAID = "Unpaid"
PAYMENT_ALREADY_PAID = "Already Paid"
PAYMENT_PENDING = "Pending"


def adjusted_gross(gross: float, tier: float) -> float:
    if is_special(tier):
        return gross * SPECIAL_GROSS_FACTOR
    return gross


def register(gross: float, tier: float) -> float:
    return adjusted_gross(gross, tier) * tier / 100


def unpaid(register_amount: float, ledger_unpaid: Optional[float], eligible: bool) -> float:
    """Ledger figure, or the whole register when the employee is ineligible."""
    if not eligible:
        return register_amount
    return ledger_unpaid or 0.0


def actual(gross: float, tier: float) -> float:
    if tier < BASE_TIER:
        return 0.0
    return adjusted_gross(gross, tier) * tier / 100


def payment_status(ledger_unpaid: Optional[float], already_paid: Optional[float]) -> str:
    if (ledger_unpaid or 0.0) > 0:
        return PAYMENT_UNPAID
    if (already_paid or 0.0) > 0:
        return PAYMENT_ALREADY_PAID
    return PAYMENT_PENDING


def reimbursement(gross: float, tier: float, status: str = PAYMENT_PENDING) -> float:
    """
    Base-rate register minus the tier-adjusted actual entitlement.

    Forced to 0 once a ledger marks the bonus as unpaid or already paid.
    """
    if status in (PAYMENT_UNPAID, PAYMENT_ALREADY_PAID):
        return 0.0
    base_register = gross * BASE_TIER / 100
    return base_register - actual(gross, tier)


def final_payable(
    register_amount: float,
    unpaid_amount: float,
    loan: float = 0.0,
    already_paid: float = 0.0,
) -> float:
    return register_amount - unpaid_amount - loan - already_paid


@dataclass
class Ledgers:
    """External per-employee figures feeding the later stages."""
    due: Dict[str, float] = field(default_factory=dict)
    loans: Dict[str, float] = field(default_factory=dict)
    already_paid: Dict[str, float] = field(default_factory=dict)


@dataclass
class StageValues:
    employee_id: str
    gross: float
    tier: float
    months_of_service: Optional[int]
    eligible: bool
    adjusted_gross: float
    register: float
    unpaid: float
    actual: float
    payment_status: str
    reimbursement: float
    loan: float
    already_paid: float
    final: float

    def software_value(self, stage: str) -> float:
        return {
            "gross": self.gross,
            "register": self.register,
            "unpaid": self.unpaid,
            "already_paid": self.already_paid,
            "reimbursement": self.reimbursement,
            "final": self.final,
        }[stage]

    def as_dict(self) -> dict:
        return {
            "gross": self.gross,
            "tier": self.tier,
            "months_of_service": self.months_of_service,
            "eligible": self.eligible,
            "adjusted_gross": self.adjusted_gross,
            "register": self.register,
            "unpaid": self.unpaid,
            "actual": self.actual,
            "payment_status": self.payment_status,
            "reimbursement": self.reimbursement,
            "loan": self.loan,
            "already_paid": self.already_paid,
            "final": self.final,
        }


def evaluate(
    record: GrossRecord,
    tier: float,
    months: Optional[int],
    eligible: bool,
    ledgers: Ledgers,
) -> StageValues:
    emp = record.employee_id
    gross = record.gross_salary
    ledger_unpaid = ledgers.due.get(emp)
    loan = ledgers.loans.get(emp, 0.0)
    paid = ledgers.already_paid.get(emp, 0.0)

    reg = register(gross, tier)
    unp = unpaid(reg, ledger_unpaid, eligible)
    status = payment_status(ledger_unpaid, paid)

    return StageValues(
        employee_id=emp,
        gross=gross,
        tier=tier,
        months_of_service=months,
        eligible=eligible,
        adjusted_gross=adjusted_gross(gross, tier),
        register=reg,
        unpaid=unp,
        actual=actual(gross, tier),
        payment_status=status,
        reimbursement=reimbursement(gross, tier, status),
        loan=loan,
        already_paid=paid,
        final=final_payable(reg, unp, loan, paid),
    )
