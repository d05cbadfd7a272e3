"""
Mutation requests accepted by GymDataCache.apply_mutation.

Each form validates itself before anything is published or sent to the store.
"""
import datetime
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

from core.errors import ValidationError
from core.utils import to_date
from models.payment import PAYMENT_DONE, PAYMENT_PENDING


class ActionKind(str, Enum):
    ADD_MEMBER = "ADD_MEMBER"
    UPDATE_MEMBER = "UPDATE_MEMBER"
    DELETE_MEMBER = "DELETE_MEMBER"
    ADD_PAYMENT = "ADD_PAYMENT"
    UPDATE_PAYMENT = "UPDATE_PAYMENT"
    DELETE_PAYMENT = "DELETE_PAYMENT"
    ADD_PLAN = "ADD_PLAN"
    UPDATE_PLAN = "UPDATE_PLAN"
    DELETE_PLAN = "DELETE_PLAN"
    UPDATE_PROFILE = "UPDATE_PROFILE"

    @property
    def verb(self) -> str:
        return self.value.split("_", 1)[0].lower()  # add/update/delete

    @property
    def entity(self) -> str:
        return self.value.split("_", 1)[1].lower()  # member/payment/plan/profile


def _missing(**fields: Any) -> List[str]:
    return [name for name, value in fields.items()
            if value is None or (isinstance(value, str) and not value.strip())]


def _raise_missing(missing: List[str]) -> None:
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")


def _iso(value: Union[str, datetime.date, None]) -> Optional[str]:
    if isinstance(value, datetime.date):
        return value.isoformat()
    return value


def _number(value: Any, cast: Callable[[Any], Any], label: str) -> Any:
    try:
        return cast(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{label} must be a number")


def _check_date(value: Any, label: str) -> None:
    try:
        to_date(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{label} must be a date (YYYY-MM-DD)")


@dataclass
class MemberForm:
    name: str
    phone: str
    plan_duration: int
    joining_date: Union[str, datetime.date]
    expiry_date: Union[str, datetime.date]
    email: str = ""
    branch_id: Optional[str] = None

    def validate(self) -> None:
        _raise_missing(_missing(name=self.name, phone=self.phone,
                                joining_date=self.joining_date, expiry_date=self.expiry_date))
        if _number(self.plan_duration, int, "Plan duration") < 1:
            raise ValidationError("Plan duration must be at least 1 month")
        _check_date(self.joining_date, "Joining date")
        _check_date(self.expiry_date, "Expiry date")

    def to_row(self) -> Dict[str, Any]:
        row = {
            "name": self.name.strip(),
            "email": (self.email or "").strip(),
            "phone": self.phone.strip(),
            "plan_duration": int(self.plan_duration),
            "joining_date": _iso(self.joining_date),
            "expiry_date": _iso(self.expiry_date),
        }
        if self.branch_id:
            row["branch_id"] = self.branch_id
        return row


@dataclass
class PaymentForm:
    member_id: str
    amount: float
    payment_method: str
    payment_date: Union[str, datetime.date, None] = None
    status: str = PAYMENT_DONE
    member_name: str = ""
    plan_name: Optional[str] = None

    def validate(self) -> None:
        _raise_missing(_missing(member_id=self.member_id, amount=self.amount,
                                payment_method=self.payment_method))
        if _number(self.amount, float, "Amount") <= 0:
            raise ValidationError("Amount must be greater than zero")
        _check_date(self.payment_date, "Payment date")
        if self.status not in (PAYMENT_DONE, PAYMENT_PENDING):
            raise ValidationError(f"Unknown payment status: {self.status}")

    def to_row(self) -> Dict[str, Any]:
        row = {
            "member_id": self.member_id,
            "member_name": self.member_name,
            "amount": float(self.amount),
            "payment_method": self.payment_method,
            "status": self.status,
            "plan_name": self.plan_name,
        }
        # Without a date, adds are stamped with the cache's today and updates keep the stored one
        if self.payment_date:
            row["payment_date"] = _iso(self.payment_date)
        return row


@dataclass
class PlanForm:
    name: str
    price: float
    duration: int
    features: List[str] = field(default_factory=list)

    def validate(self) -> None:
        _raise_missing(_missing(name=self.name, price=self.price, duration=self.duration))
        if _number(self.price, float, "Price") < 0:
            raise ValidationError("Price cannot be negative")
        if _number(self.duration, int, "Duration") < 1:
            raise ValidationError("Duration must be at least 1 month")

    def to_row(self) -> Dict[str, Any]:
        return {
            "name": self.name.strip(),
            "price": float(self.price),
            "duration": int(self.duration),
            "features": [f.strip() for f in self.features if f and f.strip()],
        }


@dataclass
class ProfileForm:
    name: str
    email: str
    gym_name: str

    def validate(self) -> None:
        _raise_missing(_missing(name=self.name, gym_name=self.gym_name))

    def to_row(self) -> Dict[str, Any]:
        row = {"name": self.name.strip(), "gym_name": self.gym_name.strip()}
        # A blank email leaves the stored one unchanged
        if self.email and self.email.strip():
            row["email"] = self.email.strip()
        return row


Form = Union[MemberForm, PaymentForm, PlanForm, ProfileForm]

_FORM_TYPES = {"member": MemberForm, "payment": PaymentForm, "plan": PlanForm, "profile": ProfileForm}


@dataclass
class Action:
    """
    A mutation request. Adds carry a form, updates carry a form and a target id,
    deletes carry only the target id.
    """
    kind: ActionKind
    form: Optional[Form] = None
    target_id: Optional[str] = None

    def validate(self) -> None:
        if self.kind.verb in ("update", "delete") and self.kind is not ActionKind.UPDATE_PROFILE:
            _raise_missing(_missing(id=self.target_id))
        if self.kind.verb == "delete":
            return
        expected = _FORM_TYPES[self.kind.entity]
        if not isinstance(self.form, expected):
            raise ValidationError(f"{self.kind.value} needs a {expected.__name__}")
        self.form.validate()

    # --- CONSTRUCTORS ---

    @classmethod
    def add_member(cls, form: MemberForm) -> "Action":
        return cls(ActionKind.ADD_MEMBER, form)

    @classmethod
    def update_member(cls, member_id: str, form: MemberForm) -> "Action":
        return cls(ActionKind.UPDATE_MEMBER, form, member_id)

    @classmethod
    def delete_member(cls, member_id: str) -> "Action":
        return cls(ActionKind.DELETE_MEMBER, target_id=member_id)

    @classmethod
    def add_payment(cls, form: PaymentForm) -> "Action":
        return cls(ActionKind.ADD_PAYMENT, form)

    @classmethod
    def update_payment(cls, payment_id: str, form: PaymentForm) -> "Action":
        return cls(ActionKind.UPDATE_PAYMENT, form, payment_id)

    @classmethod
    def delete_payment(cls, payment_id: str) -> "Action":
        return cls(ActionKind.DELETE_PAYMENT, target_id=payment_id)

    @classmethod
    def add_plan(cls, form: PlanForm) -> "Action":
        return cls(ActionKind.ADD_PLAN, form)

    @classmethod
    def update_plan(cls, plan_id: str, form: PlanForm) -> "Action":
        return cls(ActionKind.UPDATE_PLAN, form, plan_id)

    @classmethod
    def delete_plan(cls, plan_id: str) -> "Action":
        return cls(ActionKind.DELETE_PLAN, target_id=plan_id)

    @classmethod
    def update_profile(cls, form: ProfileForm) -> "Action":
        return cls(ActionKind.UPDATE_PROFILE, form)


@dataclass(frozen=True)
class MutationOutcome:
    """Emitted once per applied action, after the store answered."""
    kind: ActionKind
    ok: bool
    entity_id: Optional[str] = None
    message: str = ""
