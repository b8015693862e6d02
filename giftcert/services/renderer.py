from __future__ import annotations

import math
import os
import re
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from io import BytesIO
from typing import Any, Protocol

from flask import current_app
from PyPDF2 import PdfReader, PdfWriter
from reportlab.pdfgen import canvas

from ..errors import RenderError
from ..shared.field_mapping import (
    FieldMapping,
    FieldStyle,
    default_field_mapping,
    load_field_mapping,
)
from ..shared.storage import ensure_dir, resolve_under, write_atomic
from ..shared.time import fmt_date

BASE_FONT = "Helvetica"
BOLD_FONT = "Helvetica-Bold"
BOLD_FIELDS = {"first_name", "last_name", "amount"}

LINE_HEIGHT_PT = 20
CHAR_WIDTH_FACTOR = 0.6
MESSAGE_DEFAULT_MAX_WIDTH = 400.0
MESSAGE_DEFAULT_FONT_SIZE = 14.0

_HEX_COLOR_RE = re.compile(r"^#?([0-9a-fA-F]{6})$")


@dataclass(frozen=True)
class CertificateData:
    certificate_id: str
    first_name: str
    last_name: str
    amount: Decimal
    issue_date: date
    expires_at: date
    certificate_code: str
    message: str | None = None
    from_name: str | None = None


class TemplateSource(Protocol):
    file_path: str
    field_mapping: Any


def parse_color(value: str | None) -> tuple[float, float, float] | None:
    """Return an RGB triple in 0..1 for ``#RRGGBB``; None for anything else."""
    if not isinstance(value, str):
        return None
    match = _HEX_COLOR_RE.match(value.strip())
    if not match:
        return None
    hex_value = match.group(1)
    return tuple(int(hex_value[i : i + 2], 16) / 255.0 for i in (0, 2, 4))


def wrap_text(text: str, max_width: float, font_size: float) -> list[str]:
    """Greedy word wrap using an average glyph width of ``font_size * 0.6``."""
    max_chars = max(1, math.floor(max_width / (font_size * CHAR_WIDTH_FACTOR)))
    lines: list[str] = []
    current = ""
    for word in text.split():
        candidate = f"{current} {word}" if current else word
        if len(candidate) <= max_chars:
            current = candidate
            continue
        if current:
            lines.append(current)
        current = word
    if current:
        lines.append(current)
    return lines


def format_amount(amount: Decimal | float | int, currency_label: str = "") -> str:
    value = Decimal(str(amount))
    if value == value.to_integral_value():
        text = str(value.quantize(Decimal(1)))
    else:
        text = str(value.quantize(Decimal("0.01")))
    return f"{text} {currency_label}".strip()


def field_texts(data: CertificateData, currency_label: str = "") -> dict[str, str]:
    return {
        "first_name": data.first_name or "",
        "last_name": data.last_name or "",
        "amount": format_amount(data.amount, currency_label) if data.amount else "",
        "issue_date": fmt_date(data.issue_date),
        "expires_at": (
            f"Valid until: {fmt_date(data.expires_at)}" if data.expires_at else ""
        ),
        "certificate_code": data.certificate_code or "",
        "message": data.message or "",
        "from_name": data.from_name or "",
    }


def _draw(c, text: str, style: FieldStyle, font: str, page_height: float, y: float, size: float):
    rgb = parse_color(style.color) or (0.0, 0.0, 0.0)
    c.setFont(font, size)
    c.setFillColorRGB(*rgb)
    # mapping y is top-down; the PDF origin is bottom-left
    c.drawString(style.x, page_height - y, text)


def draw_fields(
    c,
    page_height: float,
    mapping: FieldMapping,
    texts: dict[str, str],
) -> list[str]:
    """Draw every mapped field that has a value. Returns the names drawn."""
    drawn: list[str] = []
    for name, style in mapping.items():
        text = texts.get(name)
        if not text:
            continue
        font = BOLD_FONT if name in BOLD_FIELDS else BASE_FONT
        if name == "message":
            size = (
                style.font_size
                if "font_size" in style.model_fields_set
                else MESSAGE_DEFAULT_FONT_SIZE
            )
            max_width = style.max_width or MESSAGE_DEFAULT_MAX_WIDTH
            for index, line in enumerate(wrap_text(text, max_width, size)):
                _draw(c, line, style, font, page_height, style.y + index * LINE_HEIGHT_PT, size)
        else:
            _draw(c, text, style, font, page_height, style.y, style.font_size)
        drawn.append(name)
    return drawn


def resolve_mapping(template: TemplateSource, width: float, height: float) -> FieldMapping:
    mapping = load_field_mapping(template.field_mapping)
    if mapping is None:
        if template.field_mapping:
            current_app.logger.warning(
                "[CERT-MAPPING] template=%s stored mapping invalid; using default layout",
                getattr(template, "id", "?"),
            )
        mapping = default_field_mapping(width, height)
    return mapping


def render_certificate_pdf(
    template: TemplateSource,
    data: CertificateData,
    output_dir: str,
    *,
    templates_dir: str = "",
    currency_label: str = "",
) -> str:
    """Overlay ``data`` on the first page of the template and write ``<id>.pdf``.

    Raises RenderError on any failure; the output is written atomically so a
    failed render never leaves a partial file behind.
    """
    template_path = resolve_under(templates_dir, template.file_path or "")
    output_path = os.path.join(output_dir, f"{data.certificate_id}.pdf")
    try:
        if not os.path.isfile(template_path):
            raise FileNotFoundError(f"Template file not found: {template_path}")
        base_reader = PdfReader(template_path)
        base_page = base_reader.pages[0]
        w = float(base_page.mediabox.width)
        h = float(base_page.mediabox.height)

        mapping = resolve_mapping(template, w, h)

        buffer = BytesIO()
        c = canvas.Canvas(buffer, pagesize=(w, h))
        drawn = draw_fields(c, h, mapping, field_texts(data, currency_label))
        c.save()
        buffer.seek(0)

        overlay = PdfReader(buffer)
        base_page.merge_page(overlay.pages[0])
        writer = PdfWriter()
        writer.add_page(base_page)
        out_buf = BytesIO()
        writer.write(out_buf)

        ensure_dir(output_dir)
        write_atomic(output_path, out_buf.getvalue())
    except Exception as exc:
        current_app.logger.error(
            "[CERT-RENDER-FAIL] certificate=%s template=%s error=%s",
            data.certificate_id,
            template_path,
            exc,
        )
        raise RenderError(f"PDF generation failed: {exc}") from exc

    current_app.logger.info(
        "[CERT-RENDER] certificate=%s size=%.0fx%.0f fields=%s path=%s",
        data.certificate_id,
        w,
        h,
        ",".join(drawn),
        output_path,
    )
    return output_path
