from datetime import date as Date, datetime
from decimal import Decimal
from typing import Generic, TypeVar
from uuid import UUID

from pydantic import BaseModel

from backend.access import ROLES

T = TypeVar("T")

MIN_BUDGET_YEAR = 2000
MAX_BUDGET_YEAR = 2100
MIN_PASSWORD_LENGTH = 8
MAX_CATEGORY_IDS = 50
MAX_AMOUNT = Decimal("9999999999999.99")


class RecordStatus:
    values = {"ACTIVE", "INACTIVE"}

    @classmethod
    def validate(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in cls.values:
            raise ValueError("Invalid status.")
        return normalized


class UserRole:
    values = ROLES

    @classmethod
    def validate(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in cls.values:
            raise ValueError("Invalid role.")
        return normalized


def normalize_email(value: str) -> str:
    normalized = value.strip().lower()
    local, _, domain = normalized.partition("@")
    if not local or not domain:
        raise ValueError("Invalid email.")
    return normalized


def _clean_optional(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = value.strip()
    return cleaned or None


def validate_amount(value: Decimal | None, label: str) -> Decimal:
    """Positive, at most two decimal places, and within Numeric(15, 2)."""
    if value is None or value <= 0:
        raise ValueError(f"{label} must be greater than zero.")
    if value != value.quantize(Decimal("0.01")):
        raise ValueError(f"{label} cannot have more than 2 decimal places.")
    if value > MAX_AMOUNT:
        raise ValueError(f"{label} exceeds the maximum of {MAX_AMOUNT}.")
    return value


def _validate_url(value: str) -> str:
    if not value.startswith(("http://", "https://")):
        raise ValueError("Receipt URL must be an http(s) URL.")
    return value


class PartialPayload(BaseModel):
    def changes(self) -> dict:
        """Fields the client actually sent, so that null can clear a value."""
        return {name: getattr(self, name) for name in self.model_fields_set}


# Requests


class LoginPayload(BaseModel):
    email: str
    password: str

    @classmethod
    def validate_payload(cls, payload: "LoginPayload") -> "LoginPayload":
        payload.email = normalize_email(payload.email)
        if not payload.password:
            raise ValueError("Password required.")
        return payload


class UserCreatePayload(BaseModel):
    email: str
    name: str
    password: str
    role: str = "USER"

    @classmethod
    def validate_payload(cls, payload: "UserCreatePayload") -> "UserCreatePayload":
        payload.email = normalize_email(payload.email)
        payload.name = payload.name.strip()
        if not payload.name:
            raise ValueError("User name required.")
        if len(payload.password) < MIN_PASSWORD_LENGTH:
            raise ValueError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters."
            )
        payload.role = UserRole.validate(payload.role)
        return payload


class UserUpdatePayload(PartialPayload):
    name: str | None = None
    role: str | None = None
    status: str | None = None
    password: str | None = None

    @classmethod
    def validate_payload(cls, payload: "UserUpdatePayload") -> "UserUpdatePayload":
        if "name" in payload.model_fields_set:
            payload.name = (payload.name or "").strip()
            if not payload.name:
                raise ValueError("User name required.")
        if "role" in payload.model_fields_set:
            payload.role = UserRole.validate(payload.role or "")
        if "status" in payload.model_fields_set:
            payload.status = RecordStatus.validate(payload.status or "")
        if "password" in payload.model_fields_set:
            if not payload.password or len(payload.password) < MIN_PASSWORD_LENGTH:
                raise ValueError(
                    f"Password must be at least {MIN_PASSWORD_LENGTH} characters."
                )
        return payload


class UserAccessPayload(BaseModel):
    budget_owner_id: UUID


class BudgetOwnerCreatePayload(BaseModel):
    name: str
    code: str | None = None
    description: str | None = None

    @classmethod
    def validate_payload(
        cls, payload: "BudgetOwnerCreatePayload"
    ) -> "BudgetOwnerCreatePayload":
        payload.name = payload.name.strip()
        if not payload.name:
            raise ValueError("Budget owner name required.")
        payload.code = _clean_optional(payload.code)
        if payload.code is not None:
            payload.code = payload.code.upper()
        payload.description = _clean_optional(payload.description)
        return payload


class BudgetOwnerUpdatePayload(PartialPayload):
    name: str | None = None
    code: str | None = None
    description: str | None = None
    status: str | None = None

    @classmethod
    def validate_payload(
        cls, payload: "BudgetOwnerUpdatePayload"
    ) -> "BudgetOwnerUpdatePayload":
        if "name" in payload.model_fields_set:
            payload.name = (payload.name or "").strip()
            if not payload.name:
                raise ValueError("Budget owner name required.")
        if "code" in payload.model_fields_set:
            payload.code = _clean_optional(payload.code)
            if payload.code is not None:
                payload.code = payload.code.upper()
        if "description" in payload.model_fields_set:
            payload.description = _clean_optional(payload.description)
        if "status" in payload.model_fields_set:
            payload.status = RecordStatus.validate(payload.status or "")
        return payload


class CategoryCreatePayload(BaseModel):
    name: str
    description: str | None = None

    @classmethod
    def validate_payload(cls, payload: "CategoryCreatePayload") -> "CategoryCreatePayload":
        payload.name = payload.name.strip()
        if not payload.name:
            raise ValueError("Category name required.")
        payload.description = _clean_optional(payload.description)
        return payload


class CategoryUpdatePayload(PartialPayload):
    name: str | None = None
    description: str | None = None
    status: str | None = None

    @classmethod
    def validate_payload(cls, payload: "CategoryUpdatePayload") -> "CategoryUpdatePayload":
        if "name" in payload.model_fields_set:
            payload.name = (payload.name or "").strip()
            if not payload.name:
                raise ValueError("Category name required.")
        if "description" in payload.model_fields_set:
            payload.description = _clean_optional(payload.description)
        if "status" in payload.model_fields_set:
            payload.status = RecordStatus.validate(payload.status or "")
        return payload


def validate_budget_year(year: int) -> int:
    if year < MIN_BUDGET_YEAR or year > MAX_BUDGET_YEAR:
        raise ValueError(
            f"Year must be between {MIN_BUDGET_YEAR} and {MAX_BUDGET_YEAR}."
        )
    return year


class BudgetCreatePayload(BaseModel):
    budget_owner_id: UUID
    year: int
    amount_planned: Decimal
    amount_revised: Decimal | None = None

    @classmethod
    def validate_payload(cls, payload: "BudgetCreatePayload") -> "BudgetCreatePayload":
        validate_budget_year(payload.year)
        validate_amount(payload.amount_planned, "Planned amount")
        if payload.amount_revised is not None:
            validate_amount(payload.amount_revised, "Revised amount")
        return payload


class BudgetUpdatePayload(PartialPayload):
    amount_planned: Decimal | None = None
    amount_revised: Decimal | None = None

    @classmethod
    def validate_payload(cls, payload: "BudgetUpdatePayload") -> "BudgetUpdatePayload":
        if "amount_planned" in payload.model_fields_set:
            validate_amount(payload.amount_planned, "Planned amount")
        if payload.amount_revised is not None:
            validate_amount(payload.amount_revised, "Revised amount")
        return payload


class TransactionCreatePayload(BaseModel):
    budget_owner_id: UUID
    category_id: UUID
    date: Date
    amount: Decimal
    description: str
    receipt_url: str | None = None

    @classmethod
    def validate_payload(
        cls, payload: "TransactionCreatePayload"
    ) -> "TransactionCreatePayload":
        validate_amount(payload.amount, "Amount")
        payload.description = payload.description.strip()
        if not payload.description:
            raise ValueError("Description required.")
        payload.receipt_url = _clean_optional(payload.receipt_url)
        if payload.receipt_url is not None:
            _validate_url(payload.receipt_url)
        return payload


class TransactionUpdatePayload(PartialPayload):
    budget_owner_id: UUID | None = None
    category_id: UUID | None = None
    date: Date | None = None
    amount: Decimal | None = None
    description: str | None = None
    receipt_url: str | None = None

    @classmethod
    def validate_payload(
        cls, payload: "TransactionUpdatePayload"
    ) -> "TransactionUpdatePayload":
        fields = payload.model_fields_set
        for required in ("budget_owner_id", "category_id", "date"):
            if required in fields and getattr(payload, required) is None:
                raise ValueError(f"{required} cannot be null.")
        if "amount" in fields:
            validate_amount(payload.amount, "Amount")
        if "description" in fields:
            payload.description = (payload.description or "").strip()
            if not payload.description:
                raise ValueError("Description required.")
        if "receipt_url" in fields:
            payload.receipt_url = _clean_optional(payload.receipt_url)
            if payload.receipt_url is not None:
                _validate_url(payload.receipt_url)
        return payload


# Responses


class ResponseMeta(BaseModel):
    timestamp: datetime
    request_id: str | None = None


class Envelope(BaseModel, Generic[T]):
    success: bool = True
    data: T
    meta: ResponseMeta


class PaginationResponse(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class Page(BaseModel, Generic[T]):
    items: list[T]
    pagination: PaginationResponse


class MessageResponse(BaseModel):
    message: str


class UserResponse(BaseModel):
    id: str
    email: str
    name: str
    role: str
    status: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


class LoginResponse(BaseModel):
    token: str
    user: UserResponse


class BudgetOwnerResponse(BaseModel):
    id: str
    name: str
    code: str | None = None
    description: str | None = None
    status: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


class UserAccessResponse(BaseModel):
    user_id: str
    budget_owner_id: str
    budget_owner_name: str
    budget_owner_code: str | None = None
    created_at: datetime | None = None


class CategoryResponse(BaseModel):
    id: str
    name: str
    description: str | None = None
    status: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


class BudgetResponse(BaseModel):
    id: str
    budget_owner_id: str
    budget_owner_name: str
    year: int
    amount_planned: Decimal
    amount_revised: Decimal | None = None
    amount_spent: Decimal
    amount_remaining: Decimal
    utilization_percentage: Decimal
    created_by: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


class BudgetSummaryResponse(BaseModel):
    year: int | None = None
    budget_count: int
    total_planned: Decimal
    total_revised: Decimal
    total_spent: Decimal
    total_remaining: Decimal
    average_utilization: Decimal


class TransactionResponse(BaseModel):
    id: str
    budget_owner_id: str
    budget_owner_name: str
    category_id: str
    category_name: str
    date: Date
    amount: Decimal
    description: str
    receipt_url: str | None = None
    created_by: str
    created_by_name: str
    created_at: datetime | None = None
    updated_at: datetime | None = None
