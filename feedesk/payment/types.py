from __future__ import annotations

import enum
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional, Sequence


class FeeCategory(str, enum.Enum):
    SELECTION_PROCESS = "selection_process"
    I20_CONTROL = "i20_control"
    APPLICATION = "application"
    SCHOLARSHIP = "scholarship"

    @property
    def application_scoped(self) -> bool:
        return self in (FeeCategory.APPLICATION, FeeCategory.SCHOLARSHIP)

    @property
    def posts_to_ledger(self) -> bool:
        # Application fees are not revenue-recognized here
        return self is not FeeCategory.APPLICATION

    @property
    def label(self) -> str:
        return {
            FeeCategory.SELECTION_PROCESS: "Selection Process Fee",
            FeeCategory.I20_CONTROL: "I-20 Control Fee",
            FeeCategory.APPLICATION: "Application Fee",
            FeeCategory.SCHOLARSHIP: "Scholarship Fee",
        }[self]

    @classmethod
    def parse(cls, raw: str) -> "FeeCategory":
        """Accept the stored value plus the legacy spellings seen in older payment rows."""
        key = (raw or "").strip().lower().replace("-", "_")
        aliases = {
            "selection_process_fee": cls.SELECTION_PROCESS,
            "i20_control_fee": cls.I20_CONTROL,
            "i_20_control_fee": cls.I20_CONTROL,
            "i_20_control": cls.I20_CONTROL,
            "application_fee": cls.APPLICATION,
            "scholarship_fee": cls.SCHOLARSHIP,
        }
        if key in aliases:
            return aliases[key]
        try:
            return cls(key)
        except ValueError:
            raise UnknownFeeCategory(raw) from None


class PaymentStatus(str, enum.Enum):
    PENDING_VERIFICATION = "pending_verification"
    APPROVED = "approved"
    REJECTED = "rejected"


class Decision(str, enum.Enum):
    APPROVE = "approve"
    REJECT = "reject"


class ReviewOutcome(str, enum.Enum):
    APPROVED = "approved"
    REJECTED = "rejected"
    # Approved, but a settlement step after the status transition failed
    PARTIAL = "partial"


@dataclass
class ReviewResult:
    payment_id: int
    outcome: ReviewOutcome
    status: PaymentStatus
    settled_amount: Optional[Decimal] = None
    application_id: Optional[int] = None
    ledger_created: bool = False
    reward_credited: bool = False
    referrer_id: Optional[int] = None
    failed_step: Optional[str] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.outcome is not ReviewOutcome.PARTIAL


# ================= Error taxonomy ================= #


class SettlementError(Exception):
    """Base for every failure the review flow reports to the admin."""


class InvalidDecision(SettlementError, ValueError):
    pass


class UnknownFeeCategory(SettlementError, ValueError):
    def __init__(self, raw: object) -> None:
        super().__init__(f"unknown fee category: {raw!r}")
        self.raw = raw


class NotFound(SettlementError):
    def __init__(self, kind: str, ident: object) -> None:
        super().__init__(f"{kind} {ident} not found")
        self.kind = kind
        self.ident = ident


class InvalidTransition(SettlementError):
    def __init__(self, payment_id: int, status: Optional[str] = None) -> None:
        msg = f"payment {payment_id} is not pending verification"
        if status:
            msg += f" (status={status})"
        super().__init__(msg)
        self.payment_id = payment_id
        self.status = status


AlreadyReviewed = InvalidTransition


class AmbiguousAttribution(SettlementError):
    def __init__(self, student_id: int, candidates: Sequence[int]) -> None:
        super().__init__(
            f"student {student_id} has {len(candidates)} applications and the payment names none; "
            "attach the correct application before approving"
        )
        self.student_id = student_id
        self.candidates = list(candidates)


class AttributionNotApplicable(SettlementError, ValueError):
    def __init__(self, payment_id: int, fee_category: str) -> None:
        super().__init__(f"payment {payment_id} ({fee_category}) is not tied to a scholarship application")
        self.payment_id = payment_id


class PersistenceFailure(SettlementError):
    def __init__(self, step: str, cause: BaseException) -> None:
        super().__init__(f"{step} write failed: {cause}")
        self.step = step
        self.cause = cause
