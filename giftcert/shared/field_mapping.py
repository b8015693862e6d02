from __future__ import annotations

from typing import Any, Iterator

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as SchemaError

MAPPED_FIELDS: tuple[str, ...] = (
    "first_name",
    "last_name",
    "amount",
    "issue_date",
    "expires_at",
    "certificate_code",
    "message",
    "from_name",
)

DEFAULT_X = 100.0
DEFAULT_Y = 100.0
DEFAULT_FONT_SIZE = 16.0
DEFAULT_COLOR = "#000000"


class FieldStyle(BaseModel):
    """Where and how one value is drawn. ``x``/``y`` are measured from the top-left."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    x: float = DEFAULT_X
    y: float = DEFAULT_Y
    font_size: float = Field(default=DEFAULT_FONT_SIZE, gt=0, alias="fontSize")
    color: str | None = DEFAULT_COLOR
    max_width: float | None = Field(default=None, gt=0, alias="maxWidth")


class FieldMapping(BaseModel):
    model_config = ConfigDict(extra="ignore")

    first_name: FieldStyle | None = None
    last_name: FieldStyle | None = None
    amount: FieldStyle | None = None
    issue_date: FieldStyle | None = None
    expires_at: FieldStyle | None = None
    certificate_code: FieldStyle | None = None
    message: FieldStyle | None = None
    from_name: FieldStyle | None = None

    def items(self) -> Iterator[tuple[str, FieldStyle]]:
        for name in MAPPED_FIELDS:
            style = getattr(self, name)
            if style is not None:
                yield name, style

    def is_empty(self) -> bool:
        return next(self.items(), None) is None

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


def validate_field_mapping(raw: Any) -> FieldMapping:
    """Validate a mapping supplied by a client; raises ``ValueError`` with readable text."""
    if not isinstance(raw, dict):
        raise ValueError("field_mapping must be a JSON object")
    try:
        return FieldMapping.model_validate(raw)
    except SchemaError as exc:
        problems = [
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
            for err in exc.errors()
        ]
        raise ValueError("; ".join(problems)) from exc


def load_field_mapping(raw: Any) -> FieldMapping | None:
    """Parse a stored mapping. Returns None when it is absent, empty, or malformed."""
    if not raw:
        return None
    try:
        mapping = validate_field_mapping(raw)
    except ValueError:
        return None
    if mapping.is_empty():
        return None
    return mapping


def default_field_mapping(width: float, height: float) -> FieldMapping:
    cx = width / 2.0
    cy = height / 2.0

    def style(x, y, size, color, max_width=None):
        return FieldStyle(x=x, y=y, font_size=size, color=color, max_width=max_width)

    return FieldMapping(
        first_name=style(cx - 100, cy + 50, 24, "#000000"),
        last_name=style(cx + 20, cy + 50, 24, "#000000"),
        amount=style(cx - 50, cy, 20, "#ff0000"),
        issue_date=style(cx - 100, cy - 50, 14, "#666666"),
        expires_at=style(cx - 100, cy - 80, 12, "#666666"),
        certificate_code=style(50, 50, 10, "#999999"),
        message=style(cx - 200, cy - 120, 14, "#333333", 400),
        from_name=style(cx - 50, cy - 200, 16, "#000000"),
    )
