"""Category -> context contract.

Every serial carries a category tag plus a JSON context whose shape depends
on that tag. This module is the only place that knows which fields each
category requires, and it is pure: no database access.
"""

import re
from collections.abc import Mapping
from typing import Annotated, Any, Optional

from pydantic import ValidationError, create_model

from stockdesk.models.enums import Category
from stockdesk.schemas.context import (
    AmcContext,
    CategoryContext,
    InStockContext,
    OgContext,
    PendingToCheckContext,
    ReceivedForOthersContext,
    ReturnContext,
    ReturnPendingContext,
    SpuContext,
    UncategorizedContext,
)
from stockdesk.services.errors import ContextIssue, ContextValidationError

MISSING_REQUIRED_FIELD = "MissingRequiredField"
INVALID_FIELD_TYPE = "InvalidFieldType"

CONTEXT_MODELS: dict[Category, type[CategoryContext]] = {
    Category.UNCATEGORIZED: UncategorizedContext,
    Category.IN_STOCK: InStockContext,
    Category.SPU_PENDING: SpuContext,
    Category.SPU_CLEARED: SpuContext,
    Category.AMC: AmcContext,
    Category.OG: OgContext,
    Category.RETURN: ReturnContext,
    Category.RETURN_PENDING: ReturnPendingContext,
    Category.PENDING_TO_CHECK: PendingToCheckContext,
    Category.RECEIVED_FOR_OTHERS: ReceivedForOthersContext,
}

_CAMEL_BOUNDARY_RE = re.compile(r"(?<=[a-z0-9])([A-Z])")


def _intake_model(model: type[CategoryContext]) -> type[CategoryContext]:
    # Same model with every required field made optional; constraints kept.
    overrides: dict[str, Any] = {}
    for name, field in model.model_fields.items():
        if not field.is_required():
            continue
        inner: Any = field.annotation
        if field.metadata:
            inner = Annotated[(inner, *field.metadata)]
        overrides[name] = (Optional[inner], None)
    if not overrides:
        return model
    return create_model(f"Intake{model.__name__}", __base__=model, **overrides)


_INTAKE_MODELS: dict[type[CategoryContext], type[CategoryContext]] = {
    model: _intake_model(model) for model in set(CONTEXT_MODELS.values())
}


def parse_category(value: Category | str) -> Category:
    if isinstance(value, Category):
        return value
    try:
        return Category(str(value).strip().upper())
    except ValueError:
        raise ContextValidationError(
            str(value),
            [ContextIssue("category", INVALID_FIELD_TYPE, f"Unknown category '{value}'")],
        ) from None


def _snake_key(key: str) -> str:
    return _CAMEL_BOUNDARY_RE.sub(r"_\1", key.strip()).lower()


def _clean_input(context: Mapping[str, Any]) -> dict[str, Any]:
    cleaned: dict[str, Any] = {}
    for key, value in context.items():
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        cleaned[_snake_key(str(key))] = value
    return cleaned


def _issues_from(exc: ValidationError) -> list[ContextIssue]:
    issues: list[ContextIssue] = []
    seen: set[tuple[str, str]] = set()
    for err in exc.errors():
        loc = err.get("loc") or ()
        field = str(loc[0]) if loc else "context"
        kind = MISSING_REQUIRED_FIELD if err.get("type") == "missing" else INVALID_FIELD_TYPE
        if (field, kind) in seen:
            continue
        seen.add((field, kind))
        message = "Field required" if kind == MISSING_REQUIRED_FIELD else err.get("msg", "Invalid value")
        issues.append(ContextIssue(field=field, kind=kind, message=message))
    return issues


def validate_context(
    category: Category | str,
    context: Mapping[str, Any] | None,
    *,
    enforce_required: bool = True,
) -> dict[str, Any]:
    """Validate and normalize a context payload for ``category``.

    Returns the normalized snake_case JSON-ready dict. Raises
    ContextValidationError listing every violation, not just the first.
    With ``enforce_required=False`` only field types are checked, which is
    what initial entries (direct, bulk or imported) go through.
    """
    resolved = parse_category(category)
    if context is not None and not isinstance(context, Mapping):
        raise ContextValidationError(
            resolved.value,
            [ContextIssue("context", INVALID_FIELD_TYPE, "Context must be an object")],
        )

    model = CONTEXT_MODELS[resolved]
    if not enforce_required:
        model = _INTAKE_MODELS[model]

    try:
        parsed = model.model_validate(_clean_input(context or {}))
    except ValidationError as exc:
        raise ContextValidationError(resolved.value, _issues_from(exc)) from None
    return parsed.model_dump(mode="json")


def check_context(category: Category | str, context: Mapping[str, Any] | None) -> list[ContextIssue]:
    try:
        validate_context(category, context)
    except ContextValidationError as exc:
        return exc.issues
    return []


def is_chargeable(context: Mapping[str, Any] | None) -> bool:
    return bool(context and context.get("is_chargeable"))


def describe_categories() -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    for category, model in CONTEXT_MODELS.items():
        required = [name for name, field in model.model_fields.items() if field.is_required()]
        optional = [name for name, field in model.model_fields.items() if not field.is_required()]
        out.append({"category": category.value, "required": required, "optional": optional})
    return out
