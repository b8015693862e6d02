import os
from datetime import date
from decimal import Decimal

import pytest
from PyPDF2 import PdfReader

from giftcert.errors import RenderError
from giftcert.models import Template
from giftcert.services.renderer import (
    CertificateData,
    draw_fields,
    field_texts,
    format_amount,
    parse_color,
    render_certificate_pdf,
    resolve_mapping,
    wrap_text,
)
from giftcert.shared.field_mapping import FieldMapping, default_field_mapping


class RecordingCanvas:
    def __init__(self):
        self.font = None
        self.color = None
        self.calls = []

    def setFont(self, name, size):
        self.font = (name, size)

    def setFillColorRGB(self, r, g, b):
        self.color = (r, g, b)

    def drawString(self, x, y, text):
        self.calls.append({"x": x, "y": y, "text": text, "font": self.font, "color": self.color})


def _data(**overrides):
    values = dict(
        certificate_id="c1",
        first_name="Ann",
        last_name="Lee",
        amount=Decimal("500"),
        issue_date=date(2024, 3, 5),
        expires_at=date(2025, 3, 5),
        certificate_code="CERT-1700000000000-ABC123",
        message=None,
        from_name=None,
    )
    values.update(overrides)
    return CertificateData(**values)


def test_parse_color():
    assert parse_color("#ff0000") == (1.0, 0.0, 0.0)
    assert parse_color("00FF00") == (0.0, 1.0, 0.0)
    assert parse_color("#fff") is None
    assert parse_color("red") is None
    assert parse_color("#gg0000") is None
    assert parse_color(None) is None


def test_wrap_text_greedy_lines():
    # max_chars = floor(100 / 6) = 16
    assert wrap_text("alpha beta gamma delta epsilon", 100, 10) == [
        "alpha beta gamma",
        "delta epsilon",
    ]


def test_wrap_text_long_word_gets_own_line():
    assert wrap_text("a supercalifragilistic b", 30, 10) == [
        "a",
        "supercalifragilistic",
        "b",
    ]


def test_wrap_text_never_below_one_char():
    assert wrap_text("ab cd", 1, 50) == ["ab", "cd"]


def test_format_amount():
    assert format_amount(Decimal("1500.00"), "RUB") == "1500 RUB"
    assert format_amount(Decimal("12.5"), "RUB") == "12.50 RUB"
    assert format_amount(500) == "500"


def test_field_texts_formats_dates():
    texts = field_texts(_data(), "RUB")
    assert texts["issue_date"] == "5 March 2024"
    assert texts["expires_at"] == "Valid until: 5 March 2025"
    assert texts["amount"] == "500 RUB"
    assert texts["message"] == ""


def test_y_is_converted_from_top_left():
    mapping = FieldMapping.model_validate(
        {"first_name": {"x": 10, "y": 30, "fontSize": 20, "color": "#000000"}}
    )
    c = RecordingCanvas()
    drawn = draw_fields(c, 800, mapping, {"first_name": "Ann"})
    assert drawn == ["first_name"]
    assert c.calls == [
        {"x": 10, "y": 770, "text": "Ann", "font": ("Helvetica-Bold", 20), "color": (0.0, 0.0, 0.0)}
    ]


def test_bad_color_falls_back_to_black():
    mapping = FieldMapping.model_validate(
        {"certificate_code": {"x": 5, "y": 5, "color": "not-a-color"}}
    )
    c = RecordingCanvas()
    draw_fields(c, 100, mapping, {"certificate_code": "CERT-1-AAAAAA"})
    assert c.calls[0]["color"] == (0.0, 0.0, 0.0)
    assert c.calls[0]["font"] == ("Helvetica", 16)


def test_message_lines_step_twenty_points():
    mapping = FieldMapping.model_validate(
        {"message": {"x": 0, "y": 200, "fontSize": 10, "maxWidth": 100}}
    )
    c = RecordingCanvas()
    draw_fields(c, 1000, mapping, {"message": "alpha beta gamma delta epsilon"})
    assert [(call["y"], call["text"]) for call in c.calls] == [
        (800, "alpha beta gamma"),
        (780, "delta epsilon"),
    ]


def test_message_defaults_to_fourteen_points():
    mapping = FieldMapping.model_validate({"message": {"x": 0, "y": 0}})
    c = RecordingCanvas()
    draw_fields(c, 100, mapping, {"message": "hello there"})
    assert c.calls[0]["font"] == ("Helvetica", 14.0)


def test_unmapped_and_empty_fields_are_skipped():
    mapping = FieldMapping.model_validate(
        {"first_name": {"x": 1, "y": 1}, "from_name": {"x": 1, "y": 2}}
    )
    c = RecordingCanvas()
    drawn = draw_fields(c, 100, mapping, {"first_name": "Ann", "last_name": "Lee", "from_name": ""})
    assert drawn == ["first_name"]
    assert [call["text"] for call in c.calls] == ["Ann"]


def test_invalid_stored_mapping_uses_default(app):
    template = Template(id="x", field_mapping={"first_name": {"fontSize": -3}})
    assert resolve_mapping(template, 600, 800) == default_field_mapping(600, 800)
    empty = Template(id="y", field_mapping={})
    assert resolve_mapping(empty, 600, 800) == default_field_mapping(600, 800)


def test_render_writes_single_pdf(app, template, data_root):
    out_dir = str(data_root / "certificates")
    path = render_certificate_pdf(
        template,
        _data(message="Happy birthday"),
        out_dir,
        templates_dir=str(data_root / "templates"),
        currency_label="RUB",
    )
    assert path == os.path.join(out_dir, "c1.pdf")
    assert os.listdir(out_dir) == ["c1.pdf"]
    reader = PdfReader(path)
    assert len(reader.pages) == 1
    text = reader.pages[0].extract_text()
    assert "CERT-1700000000000-ABC123" in text
    assert "Happy birthday" in text


def test_render_without_message_mapping(app, template_pdf, data_root):
    """A mapping with no message entry renders fine and leaves the message out."""
    template = Template(
        id="t-nomsg",
        file_path="sample.pdf",
        field_mapping={"first_name": {"x": 100, "y": 300}, "certificate_code": {"x": 50, "y": 700}},
    )
    path = render_certificate_pdf(
        template,
        _data(message="Should not appear"),
        str(data_root / "certificates"),
        templates_dir=str(data_root / "templates"),
    )
    text = PdfReader(path).pages[0].extract_text()
    assert "Ann" in text
    assert "Should not appear" not in text


def test_render_missing_template_raises_and_leaves_nothing(app, data_root):
    out_dir = data_root / "certificates"
    template = Template(id="gone", file_path="does-not-exist.pdf", field_mapping={})
    with pytest.raises(RenderError) as excinfo:
        render_certificate_pdf(
            template, _data(), str(out_dir), templates_dir=str(data_root / "templates")
        )
    assert isinstance(excinfo.value.__cause__, FileNotFoundError)
    assert not out_dir.exists() or os.listdir(out_dir) == []


def test_render_corrupt_template_raises(app, data_root):
    tpl_dir = data_root / "templates"
    tpl_dir.mkdir(parents=True, exist_ok=True)
    (tpl_dir / "broken.pdf").write_bytes(b"not a pdf at all")
    template = Template(id="broken", file_path="broken.pdf", field_mapping={})
    with pytest.raises(RenderError):
        render_certificate_pdf(
            template, _data(), str(data_root / "certificates"), templates_dir=str(tpl_dir)
        )
    assert not (data_root / "certificates" / "c1.pdf").exists()
