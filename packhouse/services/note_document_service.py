from __future__ import annotations

import logging
from decimal import Decimal
from io import BytesIO
from pathlib import Path
from typing import Any
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_RIGHT
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from packhouse.config import settings
from packhouse.services.formatting import folio, money, short_date
from packhouse.services.sales_service import line_items_of

logger = logging.getLogger(__name__)

PAGE_W, PAGE_H = A4
MARGIN = 14 * mm
GREEN = colors.HexColor('#2e7d32')
LIGHT_GREEN = colors.HexColor('#eef5ee')

LOGO_W = LOGO_H = 24 * mm
FOLIO_BOX_W, FOLIO_BOX_H = 56 * mm, 16 * mm
HEADER_TOP = 16 * mm
HEADER_CLEARANCE = 34 * mm

TABLE_HEADERS = ['Cantidad (kg)', 'Descripción', 'Precio unitario', 'Importe']


class NumberedCanvas(canvas.Canvas):
    """Defers page output until save() so every footer can print the page count."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._saved_page_states: list[dict] = []

    def showPage(self):
        self._saved_page_states.append(dict(self.__dict__))
        self._startPage()

    def save(self):
        page_count = len(self._saved_page_states)
        for state in self._saved_page_states:
            self.__dict__.update(state)
            self.draw_footer(page_count)
            super().showPage()
        super().save()

    def draw_footer(self, page_count: int) -> None:
        self.setFont('Helvetica', 9)
        self.drawRightString(PAGE_W - MARGIN, 8 * mm, f'Página {self._pageNumber} de {page_count}')


def note_filename(record: Any) -> str:
    return f'nota_venta_{folio(record.note_number)}.pdf'


def _draw_header(pdf: canvas.Canvas, record: Any) -> None:
    box_x = PAGE_W - MARGIN - FOLIO_BOX_W
    box_top = PAGE_H - HEADER_TOP

    logo_path = settings.business_logo_path
    if logo_path and Path(logo_path).is_file():
        pdf.drawImage(logo_path, MARGIN, box_top - LOGO_H + 2 * mm, LOGO_W, LOGO_H, preserveAspectRatio=True, mask='auto')

    title_left = MARGIN + LOGO_W + 6 * mm
    title_right = box_x - 6 * mm
    title_center = title_left + max(60 * mm, title_right - title_left) / 2

    pdf.setFont('Helvetica-Bold', 16)
    pdf.drawCentredString(title_center, PAGE_H - 22 * mm, settings.business_name)
    pdf.setFont('Helvetica', 10)
    pdf.drawCentredString(title_center, PAGE_H - 28 * mm, settings.business_registration)
    pdf.drawCentredString(title_center, PAGE_H - 34 * mm, settings.business_address)

    pdf.setFont('Helvetica-Bold', 11)
    pdf.drawString(box_x, box_top + 2 * mm, 'Nota de Venta')
    pdf.setLineWidth(0.3)
    pdf.rect(box_x, box_top - FOLIO_BOX_H, FOLIO_BOX_W, FOLIO_BOX_H)
    pdf.setFont('Helvetica', 10)
    pdf.drawString(box_x + 3 * mm, box_top - 6 * mm, 'Folio:')
    pdf.setFont('Helvetica-Bold', 10)
    pdf.drawString(box_x + 24 * mm, box_top - 6 * mm, folio(record.note_number))
    pdf.setFont('Helvetica', 10)
    pdf.drawString(box_x + 3 * mm, box_top - 12 * mm, f'Fecha: {short_date(record.sold_on)}')


def _line_table(items: list[dict], width: float) -> Table:
    rows = [TABLE_HEADERS]
    for item in items:
        rows.append(
            [
                f"{item['quantity']:.0f}",
                item['label'] or '-',
                money(item['unit_price']),
                money(item['amount']),
            ]
        )
    fixed = 32 * mm + 35 * mm + 35 * mm
    table = Table(rows, colWidths=[32 * mm, width - fixed, 35 * mm, 35 * mm], repeatRows=1)
    table.setStyle(
        TableStyle(
            [
                ('FONTSIZE', (0, 0), (-1, -1), 10),
                ('BACKGROUND', (0, 0), (-1, 0), GREEN),
                ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
                ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
                ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, LIGHT_GREEN]),
                ('ALIGN', (0, 1), (0, -1), 'RIGHT'),
                ('ALIGN', (2, 1), (3, -1), 'RIGHT'),
                ('TOPPADDING', (0, 0), (-1, -1), 2 * mm),
                ('BOTTOMPADDING', (0, 0), (-1, -1), 2 * mm),
            ]
        )
    )
    return table


def render_sales_note(record: Any) -> bytes:
    items = line_items_of(record)
    total = sum((item['amount'] for item in items), Decimal('0'))

    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        leftMargin=MARGIN,
        rightMargin=MARGIN,
        topMargin=MARGIN,
        bottomMargin=16 * mm,
        title=f'Nota de venta {folio(record.note_number)}',
        author=settings.business_name,
    )
    styles = getSampleStyleSheet()
    body = ParagraphStyle('note-body', parent=styles['Normal'], fontSize=10, leading=15)
    heading = ParagraphStyle('note-heading', parent=styles['Normal'], fontName='Helvetica-Bold', fontSize=11, leading=16)
    total_style = ParagraphStyle('note-total', parent=heading, fontSize=12, alignment=TA_RIGHT)

    story = [
        Spacer(1, HEADER_CLEARANCE),
        Paragraph('Datos del cliente', heading),
        Spacer(1, 3 * mm),
    ]
    for label, value in (
        ('Cliente', record.client_name),
        ('Domicilio', record.address),
        ('Ciudad', record.city),
        ('Placas', record.plates),
    ):
        story.append(Paragraph(f'{label}: {escape(value or "-")}', body))
    story.extend(
        [
            Spacer(1, 8 * mm),
            _line_table(items, doc.width),
            Spacer(1, 6 * mm),
            Paragraph(f'Total: {money(total)}', total_style),
        ]
    )

    doc.build(
        story,
        onFirstPage=lambda pdf, _doc: _draw_header(pdf, record),
        canvasmaker=NumberedCanvas,
    )
    logger.info('Rendered sales note %s (%d lines)', folio(record.note_number), len(items))
    return buffer.getvalue()
