# Answer validation against a form's field schema
import logging
import math
import re
from datetime import date, datetime
from typing import Any, Callable, Dict, Iterable, List, Literal, Optional, Union

from pydantic import BaseModel, EmailStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from fields import CHOICE_TYPES, MAX_CONDITIONAL_DEPTH, Answer, FieldSpec, FieldType

logger = logging.getLogger(__name__)

_EMAIL = TypeAdapter(EmailStr)
_DATE = TypeAdapter(Union[datetime, date])

ErrorKind = Literal["required", "invalid", "configuration"]


class AnswerError(BaseModel):
    field: str
    message: str
    kind: ErrorKind = "invalid"

    def __str__(self) -> str:
        return self.message


def is_empty(value: Any) -> bool:
    return value is None or value == ""


def _error(field: FieldSpec, name: str, message: str, kind: ErrorKind = "invalid") -> AnswerError:
    return AnswerError(field=name, message=f"{field.label} {message}", kind=kind)


def _to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            # ints too large for a float sit beyond any finite bound
            number = math.inf if value > 0 else -math.inf
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        if "_" in text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    return None if math.isnan(number) else number


def _same_value(a: Any, b: Any) -> bool:
    # "1" never matches 1, and True never matches 1
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b
    if isinstance(a, str) or isinstance(b, str):
        return isinstance(a, str) and isinstance(b, str) and a == b
    return a == b


def _check_text(field: FieldSpec, name: str, value: Any) -> List[AnswerError]:
    if not isinstance(value, str):
        return [_error(field, name, "must be a string")]
    errors = []
    rules = field.validation
    if rules.min_length and len(value) < rules.min_length:
        errors.append(_error(field, name, f"must be at least {rules.min_length} characters"))
    if rules.max_length and len(value) > rules.max_length:
        errors.append(_error(field, name, f"must be at most {rules.max_length} characters"))
    if rules.regex:
        try:
            matched = re.search(rules.regex, value) is not None
        except re.error:
            matched = False
        if not matched:
            errors.append(_error(field, name, "format is invalid"))
    return errors


def _check_number(field: FieldSpec, name: str, value: Any) -> List[AnswerError]:
    number = _to_number(value)
    if number is None:
        return [_error(field, name, "must be a valid number")]
    errors = []
    rules = field.validation
    if rules.min is not None and number < rules.min:
        errors.append(_error(field, name, f"must be at least {rules.min}"))
    if rules.max is not None and number > rules.max:
        errors.append(_error(field, name, f"must be at most {rules.max}"))
    return errors


def _check_email(field: FieldSpec, name: str, value: Any) -> List[AnswerError]:
    if isinstance(value, str):
        try:
            _EMAIL.validate_python(value)
            return []
        except PydanticValidationError:
            pass
    return [_error(field, name, "must be a valid email address")]


def _check_date(field: FieldSpec, name: str, value: Any) -> List[AnswerError]:
    if not isinstance(value, bool):
        try:
            _DATE.validate_python(value)
            return []
        except PydanticValidationError:
            pass
    return [_error(field, name, "must be a valid date")]


def _check_checkbox(field: FieldSpec, name: str, value: Any) -> List[AnswerError]:
    if isinstance(value, bool):
        return []
    return [_error(field, name, "must be a boolean")]


def _check_choice(field: FieldSpec, name: str, value: Any) -> List[AnswerError]:
    if not field.options:
        return [_error(field, name, "has no valid options", kind="configuration")]
    if any(_same_value(v, value) for v in field.option_values):
        return []
    return [_error(field, name, "must be one of the provided options")]


def _check_file(field: FieldSpec, name: str, value: Any) -> List[AnswerError]:
    blank = not isinstance(value, str) or value.strip() == ""
    if field.required:
        return [_error(field, name, "is required", kind="required")] if blank else []
    if not is_empty(value) and blank:
        return [_error(field, name, "must be a valid file path")]
    return []


TypeCheck = Callable[[FieldSpec, str, Any], List[AnswerError]]

TYPE_CHECKS: Dict[FieldType, TypeCheck] = {
    FieldType.TEXT: _check_text,
    FieldType.TEXTAREA: _check_text,
    FieldType.NUMBER: _check_number,
    FieldType.EMAIL: _check_email,
    FieldType.DATE: _check_date,
    FieldType.CHECKBOX: _check_checkbox,
    FieldType.RADIO: _check_choice,
    FieldType.SELECT: _check_choice,
    FieldType.FILE: _check_file,
}

_unchecked = set(FieldType) - set(TYPE_CHECKS)
if _unchecked:
    raise RuntimeError(f"No answer check registered for field types: {sorted(t.value for t in _unchecked)}")


def validate_field_value(field: FieldSpec, value: Any, name: Optional[str] = None) -> List[AnswerError]:
    """Check one answer value against one field, ignoring conditional children.

    `name` is the answer name errors are reported under; it defaults to the
    field's own name and is the prefixed name for nested fields.
    """
    name = name or field.name
    empty = is_empty(value)

    # file fields fold the required check into their own branch
    if field.required and empty and field.type != FieldType.FILE:
        return [_error(field, name, "is required", kind="required")]
    if not field.required and empty:
        return []

    return TYPE_CHECKS[field.type](field, name, value)


def validate_conditional_fields(
    field: FieldSpec,
    selected: Any,
    answer_map: Dict[str, Any],
    parent_name: Optional[str] = None,
    depth: int = 1,
    max_depth: int = MAX_CONDITIONAL_DEPTH,
) -> List[AnswerError]:
    """Validate the nested fields revealed by `selected` on a radio/select field.

    Nested answers are looked up as ``{parent}_{nested}``. Branches for other
    options are never looked at.
    """
    if field.type not in CHOICE_TYPES or not selected or depth > max_depth:
        return []
    parent_name = parent_name or field.name
    return _validate_fields(field.branch(selected), answer_map, parent_name, depth, max_depth)


def _validate_fields(
    fields: List[FieldSpec],
    answer_map: Dict[str, Any],
    prefix: Optional[str],
    depth: int,
    max_depth: int,
) -> List[AnswerError]:
    errors = []
    for field in fields:
        name = f"{prefix}_{field.name}" if prefix else field.name
        value = answer_map.get(name)
        errors.extend(validate_field_value(field, value, name))
        errors.extend(validate_conditional_fields(field, value, answer_map, name, depth + 1, max_depth))
    return errors


def build_answer_map(answers: Iterable[Union[Answer, dict]]) -> Dict[str, Any]:
    """name -> value, later duplicates overwrite earlier ones.

    Entries without a string ``name`` are skipped and logged.
    """
    mapping = {}
    for answer in answers:
        if isinstance(answer, Answer):
            mapping[answer.name] = answer.value
        elif isinstance(answer, dict) and isinstance(answer.get("name"), str):
            mapping[answer["name"]] = answer.get("value")
        else:
            logger.warning("Skipping malformed answer entry: %r", answer)
    return mapping


def validate_answers(form, answers: Iterable[Union[Answer, dict]], max_depth: int = MAX_CONDITIONAL_DEPTH) -> List[AnswerError]:
    """Validate a bag of answers against a form definition or snapshot.

    Args:
        form (FormDefinition | FormSnapshot): Anything exposing ``fields``.
        answers (Iterable[Answer | dict]): ``{name, value}`` pairs in any order.
        max_depth (int): Conditional nesting levels followed.

    Returns:
        list[AnswerError]: Every problem found, in field declaration order with
            a branch's errors right after its parent's. Empty means accepted.
    """
    return _validate_fields(list(form.fields), build_answer_map(answers), None, 0, max_depth)
