"""Blank A4 gift certificate artwork for trying the service without a designer PDF."""

from __future__ import annotations

from io import BytesIO

from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from .shared.storage import write_atomic

DARK_BLUE = (0.1, 0.2, 0.5)
GOLD = (0.8, 0.6, 0.1)
GRAY = (0.4, 0.4, 0.4)


def draw_sample_template(path: str, page_size=A4) -> str:
    buf = BytesIO()
    c = canvas.Canvas(buf, pagesize=page_size)
    width, height = page_size

    c.setStrokeColorRGB(*DARK_BLUE)
    c.setLineWidth(3)
    c.rect(40, 40, width - 80, height - 80)
    c.setStrokeColorRGB(*GOLD)
    c.setLineWidth(1)
    c.rect(60, 60, width - 120, height - 120)

    c.setFillColorRGB(*DARK_BLUE)
    c.setFont("Helvetica-Bold", 28)
    c.drawCentredString(width / 2, height - 150, "GIFT CERTIFICATE")
    c.setFillColorRGB(*GRAY)
    c.setFont("Helvetica", 16)
    c.drawCentredString(width / 2, height - 190, "for our services")

    c.setStrokeColorRGB(*GOLD)
    c.setLineWidth(2)
    c.line(100, height - 220, width - 100, height - 220)

    c.setFont("Helvetica", 12)
    c.drawCentredString(width / 2, 90, "Present this certificate to redeem it.")

    c.showPage()
    c.save()
    write_atomic(path, buf.getvalue())
    return path
