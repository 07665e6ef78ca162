"""Input payloads accepted by the ledger, validated with pydantic."""

from __future__ import annotations

import datetime as dt
from collections.abc import Mapping
from decimal import Decimal
from typing import Any, Annotated, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from errors import ValidationError
from ledger_model import MAX_DESCRIPTION_LENGTH, Frequency

Amount = Annotated[Decimal, Field(gt=0, max_digits=10, decimal_places=2)]
Description = Annotated[str, Field(min_length=1, max_length=MAX_DESCRIPTION_LENGTH)]
Category = Annotated[str, Field(min_length=1)]
Month = Annotated[str, Field(pattern=r"^\d{4}-(0[1-9]|1[0-2])$")]

_Model = TypeVar("_Model", bound=BaseModel)


class _Payload(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")


class ExpenseCreate(_Payload):
    description: Description
    category: Category
    amount: Amount
    date: dt.date


class ExpenseUpdate(_Payload):
    description: Optional[Description] = None
    category: Optional[Category] = None
    amount: Optional[Amount] = None
    date: Optional[dt.date] = None


class BudgetCreate(_Payload):
    category: Category
    limit: Amount
    month: Month


class BudgetUpdate(_Payload):
    category: Optional[Category] = None
    limit: Optional[Amount] = None
    month: Optional[Month] = None


class RecurringPaymentCreate(_Payload):
    description: Description
    category: Category
    amount: Amount
    frequency: Frequency
    start_date: dt.date
    is_active: bool = True


class RecurringPaymentUpdate(_Payload):
    description: Optional[Description] = None
    category: Optional[Category] = None
    amount: Optional[Amount] = None
    frequency: Optional[Frequency] = None
    start_date: Optional[dt.date] = None
    is_active: Optional[bool] = None


def summarize_errors(exc: PydanticValidationError) -> list[dict[str, Any]]:
    """Reduce pydantic error details to JSON-safe location/message pairs."""
    return [
        {
            "field": ".".join(str(part) for part in error.get("loc", ())),
            "message": error.get("msg", ""),
            "type": error.get("type", ""),
        }
        for error in exc.errors()
    ]


def parse_payload(model: type[_Model], data: _Model | Mapping[str, Any]) -> _Model:
    """Validate raw input into `model`, raising the ledger's ValidationError."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid {model.__name__} payload", summarize_errors(exc)) from exc


def changed_fields(payload: BaseModel) -> dict[str, Any]:
    """Return only the fields the caller actually set on an update payload."""
    return payload.model_dump(exclude_unset=True, exclude_none=True)
