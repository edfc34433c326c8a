# Field schema model, name normalization and schema building
import copy
import enum
import logging
import re
import time
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictFloat, StrictInt, StrictStr
from pydantic import ValidationError as PydanticValidationError

logger = logging.getLogger(__name__)

NAME_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9_]*$")
MAX_CONDITIONAL_DEPTH = 1


class SchemaError(ValueError):
    """Structural problem in an authored field list. Fatal to the authoring call."""


class FieldType(str, enum.Enum):
    TEXT = "text"
    TEXTAREA = "textarea"
    NUMBER = "number"
    EMAIL = "email"
    DATE = "date"
    CHECKBOX = "checkbox"
    RADIO = "radio"
    SELECT = "select"
    FILE = "file"


CHOICE_TYPES = frozenset({FieldType.RADIO, FieldType.SELECT})

OptionValue = Union[StrictBool, StrictInt, StrictFloat, StrictStr]


class LabeledOption(BaseModel):
    value: OptionValue
    label: Optional[str] = None


Option = Union[LabeledOption, OptionValue]


def option_value(option: Option) -> OptionValue:
    """Return the value an answer is compared against."""
    if isinstance(option, LabeledOption):
        return option.value
    return option


class FieldValidation(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    min: Optional[Union[int, float]] = None
    max: Optional[Union[int, float]] = None
    min_length: Optional[int] = Field(default=None, alias="minLength")
    max_length: Optional[int] = Field(default=None, alias="maxLength")
    regex: Optional[str] = None


class FieldSpec(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    label: str = Field(min_length=1)
    name: str = Field(pattern=NAME_PATTERN.pattern)
    type: FieldType
    required: bool = False
    options: List[Option] = Field(default_factory=list)
    conditional_fields: Dict[str, List["FieldSpec"]] = Field(default_factory=dict, alias="conditionalFields")
    validation: FieldValidation = Field(default_factory=FieldValidation)
    order: int = 0

    @property
    def option_values(self) -> List[OptionValue]:
        return [option_value(o) for o in self.options]

    def branch(self, selected: Any) -> List["FieldSpec"]:
        """Nested fields revealed when `selected` is the chosen option."""
        if self.type not in CHOICE_TYPES or not self.conditional_fields:
            return []
        return self.conditional_fields.get(branch_key(selected), [])


class Answer(BaseModel):
    name: str
    value: Any = None


class FormSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    description: str = ""
    fields: List[FieldSpec] = Field(default_factory=list)


class FormDefinition(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    title: str
    description: Optional[str] = ""
    fields: List[FieldSpec] = Field(default_factory=list)
    version: int = 1
    is_active: bool = True
    is_deleted: bool = False
    deleted_at: Optional[datetime] = None


def branch_key(value: Any) -> str:
    """Render an answer value the way option keys are written in `conditionalFields`."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def normalize_field_name(label: Optional[str]) -> str:
    """Derive a machine-safe identifier from a label.

    Lowercases, maps anything outside ``[a-z0-9_]`` to ``_``, collapses and
    trims underscores, and prefixes ``field_`` when the result does not start
    with a letter. An input that normalizes to nothing gets a time-based
    ``field_<millis>`` placeholder, so that single case is not deterministic.
    """
    name = (label or "").lower()
    name = re.sub(r"[^a-z0-9_]", "_", name)
    name = re.sub(r"_+", "_", name)
    name = name.strip("_")
    if name and not re.match(r"[a-z]", name):
        name = "field_" + name
    if not name:
        name = f"field_{int(time.time() * 1000)}"
    return name


def _clean_supplied_name(name: str) -> str:
    # runs of underscores are kept, so a__b and a_b stay distinct
    name = re.sub(r"[^a-z0-9_]", "_", name.lower()).strip("_")
    if not re.match(r"[a-z]", name):
        name = "field_" + name
    return name


def _as_list(value: Any) -> list:
    return list(value) if isinstance(value, list) else []


def _as_dict(value: Any) -> dict:
    return dict(value) if isinstance(value, dict) else {}


def _coerce_field(raw: Any, index: int, depth: int, max_depth: int) -> dict:
    if not isinstance(raw, dict):
        raise SchemaError(f"Field at position {index + 1} must be an object")

    label = raw.get("label")
    label = label.strip() if isinstance(label, str) else ""
    if not label:
        raise SchemaError(f"Field label is required (position {index + 1})")

    name = raw.get("name")
    if isinstance(name, str) and NAME_PATTERN.match(name.strip()):
        name = _clean_supplied_name(name.strip())
    else:
        name = normalize_field_name(label)

    conditional = {}
    branches = _as_dict(raw.get("conditionalFields", raw.get("conditional_fields")))
    if branches and depth >= max_depth:
        logger.warning("Dropping conditional fields of %r nested beyond depth %d", name, max_depth)
    elif branches:
        for key, nested in branches.items():
            if not isinstance(nested, list):
                continue
            conditional[str(key)] = _coerce_list(nested, depth + 1, max_depth)

    return {
        "label": label,
        "name": name,
        "type": raw.get("type"),
        "required": raw.get("required") or False,
        "options": _as_list(raw.get("options")),
        "conditionalFields": conditional,
        "validation": _as_dict(raw.get("validation")),
        "order": raw.get("order") or 0,
    }


def _coerce_list(raw_fields: list, depth: int, max_depth: int) -> List[dict]:
    coerced = [_coerce_field(f, i, depth, max_depth) for i, f in enumerate(raw_fields)]
    seen = set()
    for field in coerced:
        if field["name"] in seen:
            raise SchemaError(f"Field names must be unique within a form (duplicate: {field['name']!r})")
        seen.add(field["name"])
    return coerced


def _order_key(field: FieldSpec) -> int:
    return field.order


def _sorted_tree(fields: List[FieldSpec]) -> List[FieldSpec]:
    for field in fields:
        for key, nested in field.conditional_fields.items():
            field.conditional_fields[key] = _sorted_tree(nested)
    return sorted(fields, key=_order_key)


def build_field_schema(raw_fields: Any, max_depth: int = MAX_CONDITIONAL_DEPTH) -> List[FieldSpec]:
    """Turn raw author input into a canonical, ordered FieldSpec list.

    Args:
        raw_fields (Any): JSON list of field objects as sent by the form editor.
        max_depth (int): Conditional nesting levels kept; deeper branches are dropped.

    Returns:
        list[FieldSpec]: Fields sorted by ``order`` (stable) at every level.

    Raises:
        SchemaError: Non-list input, missing label, unknown type, or duplicate
            sibling names after normalization.
    """
    if not isinstance(raw_fields, list):
        raise SchemaError("Fields must be an array")
    coerced = _coerce_list(raw_fields, 0, max_depth)
    try:
        fields = [FieldSpec.model_validate(f) for f in coerced]
    except PydanticValidationError as exc:
        err = exc.errors()[0]
        location = ".".join(str(p) for p in err["loc"])
        raise SchemaError(f"Invalid field definition ({location}): {err['msg']}") from exc
    return _sorted_tree(fields)


def dump_fields(fields: List[FieldSpec]) -> List[Dict[str, Any]]:
    """JSON wire form of a field list, as stored and compared for versioning."""
    return [f.model_dump(mode="json", by_alias=True, exclude_none=True) for f in fields]


def load_fields(data: Any) -> List[FieldSpec]:
    return [FieldSpec.model_validate(f) for f in copy.deepcopy(data or [])]
