"""
Export Service
==============
Turns report data into downloadable CSV, XLSX and PDF files.

Each report has a fixed header set; ``*_table()`` helpers turn report data
into ``(headers, rows)`` and the ``to_*()`` writers render any such table.

    report        headers
    ────────────  ────────────────────────────────────────────────────────────
    transactions  Date It Was Used, Recording Dated, User, Amount (L),
                  Comment, Generator, Plaza
    users         Name, Email, Role, Plaza
    detail        Refuel Date, Record Date, Type, Generator, Fuel Added (L),
                  Fuel Used (L), Odometer(hrs), Diff since prev (hours),
                  HoursPerLiter
    combined      detail headers with User after Generator
"""
import csv
import io
import re
from datetime import datetime
from decimal import Decimal
from xml.sax.saxutils import escape

from flask import send_file
from openpyxl import Workbook
from openpyxl.styles import Font
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from services.consumption_service import TransactionKind


TRANSACTION_HEADERS = [
    'Date It Was Used', 'Recording Dated', 'User', 'Amount (L)', 'Comment', 'Generator', 'Plaza',
]
USER_HEADERS = ['Name', 'Email', 'Role', 'Plaza']
DETAIL_HEADERS = [
    'Refuel Date', 'Record Date', 'Type', 'Generator', 'Fuel Added (L)', 'Fuel Used (L)',
    'Odometer(hrs)', 'Diff since prev (hours)', 'HoursPerLiter',
]
COMBINED_HEADERS = DETAIL_HEADERS[:4] + ['User'] + DETAIL_HEADERS[4:]

KIND_LABELS = {
    TransactionKind.ADDITION: 'Added to tank',
    TransactionKind.WITHDRAWAL: 'Taken to generator',
}

DATE_FORMAT = '%Y-%m-%d %H:%M'

_INVALID_SHEET_CHARS = re.compile(r'[\\/*?:\[\]]')

EXPORT_MIMETYPES = {
    'csv': 'text/csv',
    'xlsx': 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
    'pdf': 'application/pdf',
}


def _fmt_date(value):
    return value.strftime(DATE_FORMAT) if isinstance(value, datetime) else ''


def _blank(value):
    return '' if value is None else value


# ---------------------------------------------------------------------------
# Tables
# ---------------------------------------------------------------------------

def transaction_table(entries):
    """``(headers, rows)`` for ``ReportService.transaction_log()`` output."""
    rows = [
        [
            _fmt_date(e['occurred_at']),
            _fmt_date(e['recorded_at']),
            e['user'],
            e['amount'],
            e['comment'],
            e['generator'],
            e['location'],
        ]
        for e in entries
    ]
    return TRANSACTION_HEADERS, rows


def users_table(entries):
    rows = [[e['name'], e['email'], e['role'], e['location']] for e in entries]
    return USER_HEADERS, rows


def _detail_cells(row):
    return [
        _fmt_date(row.occurred_at),
        _fmt_date(row.recorded_at),
        KIND_LABELS[row.kind],
        row.equipment_label,
        row.liters_added,
        row.liters_used,
        _blank(row.odometer_reading),
        _blank(row.odometer_delta),
        _blank(row.consumption_rate),
    ]


def detail_table(rows):
    """``(headers, rows)`` for a list of ``DerivedRow``."""
    return DETAIL_HEADERS, [_detail_cells(r) for r in rows]


def combined_table(user_rows):
    """``(headers, rows)`` for ``ReportService.multi_user_detail()`` output.

    Users' rows are concatenated in the given user order.
    """
    table = []
    for user, rows in user_rows:
        for row in rows:
            cells = _detail_cells(row)
            table.append(cells[:4] + [user.display_name] + cells[4:])
    return COMBINED_HEADERS, table


# ---------------------------------------------------------------------------
# Writers
# ---------------------------------------------------------------------------

def _text(value):
    if isinstance(value, Decimal):
        return format(value, 'f')
    return '' if value is None else str(value)


def to_csv(headers, rows):
    """UTF-8 (with BOM, for Excel) CSV bytes."""
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(headers)
    for row in rows:
        writer.writerow([_text(v) for v in row])
    return buf.getvalue().encode('utf-8-sig')


def to_xlsx(headers, rows, sheet_name='Report'):
    """Single-sheet workbook bytes; Decimal cells are written as numbers."""
    workbook = Workbook()
    worksheet = workbook.active
    worksheet.title = _INVALID_SHEET_CHARS.sub(' ', sheet_name)[:31] or 'Report'
    worksheet.append(headers)
    for cell in worksheet[1]:
        cell.font = Font(bold=True)
    for row in rows:
        worksheet.append([float(v) if isinstance(v, Decimal) else v for v in row])

    for index, header in enumerate(headers, start=1):
        width = max([len(str(header))] + [len(_text(r[index - 1])) for r in rows])
        worksheet.column_dimensions[worksheet.cell(row=1, column=index).column_letter].width = min(width + 2, 50)

    buf = io.BytesIO()
    workbook.save(buf)
    return buf.getvalue()


def to_pdf(headers, rows, title='Report'):
    """A4 landscape table, header row repeated on every page."""
    buf = io.BytesIO()
    doc = SimpleDocTemplate(
        buf, pagesize=landscape(A4),
        leftMargin=12 * mm, rightMargin=12 * mm, topMargin=14 * mm, bottomMargin=14 * mm,
        title=title,
    )
    styles = getSampleStyleSheet()
    cell_style = styles['BodyText']
    cell_style.fontSize = 8
    cell_style.leading = 10

    data = [headers]
    data.extend([Paragraph(escape(_text(v)), cell_style) for v in row] for row in rows)
    if not rows:
        data.append(['-'] * len(headers))

    table = Table(data, repeatRows=1)
    table.setStyle(TableStyle([
        ('FONT', (0, 0), (-1, 0), 'Helvetica-Bold', 9),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#233b64')),
        ('FONTSIZE', (0, 1), (-1, -1), 8),
        ('GRID', (0, 0), (-1, -1), 0.25, colors.HexColor('#d8e2f0')),
        ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.whitesmoke, colors.HexColor('#f7f9fc')]),
        ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
        ('LEFTPADDING', (0, 0), (-1, -1), 4),
        ('RIGHTPADDING', (0, 0), (-1, -1), 4),
    ]))

    generated = datetime.now().strftime(DATE_FORMAT)
    doc.build([
        Paragraph(title, styles['Heading2']),
        Paragraph(f'Generated: {generated}', styles['Normal']),
        Spacer(1, 6 * mm),
        table,
    ])
    return buf.getvalue()


def render(fmt, headers, rows, title):
    """Bytes for *fmt* ('csv', 'xlsx' or 'pdf'); ``ValueError`` for anything else."""
    if fmt == 'csv':
        return to_csv(headers, rows)
    if fmt == 'xlsx':
        return to_xlsx(headers, rows, sheet_name=title)
    if fmt == 'pdf':
        return to_pdf(headers, rows, title=title)
    raise ValueError(f'Unsupported export format: {fmt}')


def send_export(fmt, headers, rows, title, filename):
    """Flask download response for a table; *filename* has no extension."""
    content = render(fmt, headers, rows, title)
    return send_file(
        io.BytesIO(content),
        mimetype=EXPORT_MIMETYPES[fmt],
        as_attachment=True,
        download_name=f'{filename}.{fmt}',
    )
