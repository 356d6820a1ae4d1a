# pdf_service.py
import io
import logging
import re
from datetime import date

from reportlab.pdfgen import canvas
from reportlab.lib import colors
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader

from image_loader import ImageLoadResult, load_optional_image
from models import (
    DailyReportContent,
    FeedPost,
    JsaReportContent,
    ReceiptContent,
    TimecardContent,
)
from pdf_layout import (
    CELL,
    CELL_BOLD,
    CELL_MUTED,
    DARK,
    DASH,
    DIVIDER,
    LABEL_GRAY,
    MED,
    TABLE_LEAD_MM,
    VALUE,
    Column,
    Document,
    ImageOp,
    LayoutCursor,
    LineOp,
    LineStyle,
    RectOp,
    Table,
    TextOp,
    TextStyle,
    Theme,
    aspect_fit,
    draw_table,
    field_row,
    image_block,
    section_bar,
    section_title,
    stamp_footers,
    text_block,
    wrap_text,
)

logger = logging.getLogger(__name__)

TIMECARD_THEME = Theme(
    accent=colors.HexColor("#2563eb"),        # blue-600
    accent_dark=colors.HexColor("#1e40af"),   # blue-800
    accent_light=colors.HexColor("#dbeafe"),  # blue-100
)
RECEIPT_THEME = Theme(
    accent=colors.HexColor("#166534"),        # green-800
    accent_dark=colors.HexColor("#166534"),
    accent_light=colors.HexColor("#dcfce7"),  # green-100
)
DAILY_REPORT_THEME = Theme(
    accent=colors.HexColor("#b45d00"),
    accent_dark=colors.HexColor("#b45d00"),
    accent_light=colors.HexColor("#fef3c7"),  # amber-100
)
JSA_THEME = Theme(
    accent=colors.HexColor("#b45309"),        # amber-700
    accent_dark=colors.HexColor("#b45309"),
    accent_light=colors.HexColor("#fef3c7"),
)
LIGHT_BG = colors.HexColor("#f9fafb")  # gray-50

LOGO_MAX_W = 40
LOGO_MAX_H = 20
RECEIPT_PHOTO_MAX_H = 120
SIGNATURE_W = 60
SIGNATURE_H = 20

JSA_ACKNOWLEDGMENT = (
    "I acknowledge that the Job Safety Analysis has been reviewed with me, I understand the "
    "hazards and required controls, and I agree to follow all safety procedures outlined."
)
JSA_SIGNATURE_ROLES = ["Prepared By", "Site Supervisor", "Competent Person", "Employee"]


# -----------------------------
# Formatting
# -----------------------------
def _money(x) -> str:
    try:
        v = float(x)
    except (TypeError, ValueError):
        return f"${x}"
    sign = "-" if v < 0 else ""
    return f"{sign}${abs(v):,.2f}"


def _hours(x) -> str:
    return f"{float(x or 0.0):.2f} hours"


def _display_date(iso: str) -> str:
    """'2025-01-15' -> 'Wednesday, January 15, 2025'."""
    raw = (iso or "").strip()
    if not raw:
        return DASH
    try:
        d = date.fromisoformat(raw[:10])
    except ValueError:
        return raw
    return f"{d:%A}, {d:%B} {d.day}, {d.year}"


def _slug(name: str, fallback: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", (name or "").lower()).strip("-")
    return slug or fallback


def document_filename(doctype: str, name: str, date_str: str, fallback: str) -> str:
    return f"{doctype}-{_slug(name, fallback)}-{(date_str or '').strip() or 'draft'}.pdf"


def unique_filename(filename: str, post_id: int, used: set) -> str:
    """Suffix `-<post_id>` when `filename` was already handed out, then record it."""
    if filename in used:
        filename = f"{filename[:-4]}-{post_id}.pdf"
    used.add(filename)
    return filename


# -----------------------------
# Shared composition steps
# -----------------------------
def _load(doc: Document, key: str, url: str | None) -> ImageLoadResult:
    result = load_optional_image(url)
    doc.image_results[key] = result
    return result


def header_block(cursor: LayoutCursor, title: str, subtitle: str, logo: ImageLoadResult, theme: Theme):
    """Title + subtitle on the left, optional logo on the right, accent rule underneath."""
    doc = cursor.doc
    m, cw = doc.margin, doc.content_width
    start_y = cursor.y

    logo_bottom = start_y
    if logo.loaded:
        w, h = aspect_fit(logo.image.width, logo.image.height, LOGO_MAX_W, LOGO_MAX_H)
        cursor.page.image(logo.image, doc.page_width - m - w, start_y, w, h)
        logo_bottom = start_y + h

    cursor.page.text(m, start_y + 8, title, TextStyle("Helvetica-Bold", 16, DARK))
    cursor.page.text(m, start_y + 14, subtitle, TextStyle("Helvetica", 10, MED))
    text_bottom = start_y + 16

    cursor.y = max(logo_bottom, text_bottom) + 4
    cursor.page.line(m, cursor.y, m + cw, cursor.y, LineStyle(theme.accent, 0.5))
    cursor.advance(4)


def _finish(doc: Document, theme: Theme, generated_on: date | None, kind: str) -> Document:
    stamp_footers(doc, theme, generated_on or date.today())
    skipped = [k for k, r in doc.image_results.items() if r.error is not None]
    logger.info("Composed %s: %d page(s)%s", kind, doc.page_count,
                f", skipped images: {', '.join(skipped)}" if skipped else "")
    return doc


# -----------------------------
# Timecard
# -----------------------------
def _timecard_details(cursor: LayoutCursor, content: TimecardContent):
    section_title(cursor, "TIMECARD DETAILS", TIMECARD_THEME)
    field_row(cursor, "Project Name", content.project_name or DASH)
    field_row(cursor, "Date", _display_date(content.date))
    field_row(cursor, "Address", content.address or DASH)
    field_row(cursor, "Employees", f"{len(content.entries)}")
    field_row(cursor, "Grand Total", _hours(content.grand_total_hours))


def _timecard_log(cursor: LayoutCursor, content: TimecardContent):
    section_title(cursor, "EMPLOYEE TIME LOG", TIMECARD_THEME, keep_with=TABLE_LEAD_MM)
    cw = cursor.doc.content_width
    columns = [
        Column("EMPLOYEE", 0, 55, CELL),
        Column("TIME IN", 55, 25, CELL_MUTED),
        Column("TIME OUT", 80, 25, CELL_MUTED),
        Column("LUNCH", 105, 25, CELL_MUTED),
        Column("HOURS", 130, cw - 130, CELL_BOLD),
    ]
    rows = (
        (e.employee_name, e.time_in, e.time_out, f"{e.lunch_minutes} min", f"{e.total_hours:.2f}")
        for e in content.entries
    )
    summary = ("GRAND TOTAL", "", "", "", _hours(content.grand_total_hours))
    draw_table(cursor, Table(columns=columns, rows=rows, summary=summary), TIMECARD_THEME)


def build_timecard_document(
    content: TimecardContent,
    logo_url: str | None = None,
    *,
    generated_on: date | None = None,
) -> Document:
    doc = Document()
    cursor = LayoutCursor(doc)
    header_block(cursor, "Timecard", content.project_name or DASH, _load(doc, "logo", logo_url), TIMECARD_THEME)
    _timecard_details(cursor, content)
    _timecard_log(cursor, content)
    return _finish(doc, TIMECARD_THEME, generated_on, "timecard")


# -----------------------------
# Receipt
# -----------------------------
def _receipt_details(cursor: LayoutCursor, content: ReceiptContent):
    section_title(cursor, "RECEIPT DETAILS", RECEIPT_THEME)
    field_row(cursor, "Vendor / Store", content.vendor_name or DASH)
    field_row(cursor, "Date", _display_date(content.receipt_date))
    field_row(cursor, "Total Amount", _money(content.total_amount))
    field_row(cursor, "Category", content.category or DASH)


def _receipt_photo(cursor: LayoutCursor, photo: ImageLoadResult):
    if not photo.loaded:
        return
    section_title(cursor, "RECEIPT IMAGE", RECEIPT_THEME)
    image_block(cursor, photo.image, cursor.doc.content_width, RECEIPT_PHOTO_MAX_H)


def build_receipt_document(
    content: ReceiptContent,
    photo_url: str | None = None,
    logo_url: str | None = None,
    *,
    generated_on: date | None = None,
) -> Document:
    doc = Document()
    cursor = LayoutCursor(doc)
    header_block(cursor, "Receipt", content.vendor_name or DASH, _load(doc, "logo", logo_url), RECEIPT_THEME)
    _receipt_details(cursor, content)
    _receipt_photo(cursor, _load(doc, "photo", photo_url))
    return _finish(doc, RECEIPT_THEME, generated_on, "receipt")


# -----------------------------
# Daily field report
# -----------------------------
def _daily_report_header(cursor: LayoutCursor, content: DailyReportContent):
    doc = cursor.doc
    m, cw, pw = doc.margin, doc.content_width, doc.page_width
    page, y = cursor.page, cursor.y
    caption = TextStyle("Helvetica-Bold", 8, MED)

    page.rect(m, y, cw, 26, LIGHT_BG)
    page.text(m + 4, y + 10, "DAILY FIELD REPORT", TextStyle("Helvetica-Bold", 20, DARK))
    page.rect(m + 4, y + 12, 70, 1, DAILY_REPORT_THEME.accent)
    page.text(pw - m - 4, y + 8, _display_date(content.date), TextStyle("Helvetica", 9, MED, align="right"))

    page.text(m + 4, y + 19, "PROJECT", caption)
    page.text(m + 22, y + 19, content.project_name or DASH, VALUE)
    page.text(m + 4, y + 25, "ADDRESS", caption)
    page.text(m + 22, y + 25, content.address or DASH, VALUE)
    cursor.advance(30)


def _daily_report_crew(cursor: LayoutCursor, content: DailyReportContent):
    """
    Three side-by-side cells. Wrapped values advance together one line at a
    time, so a very long value continues on the next page.
    """
    section_bar(cursor, "CREW", DAILY_REPORT_THEME)
    m = cursor.doc.margin
    col_w = cursor.doc.content_width / 3
    items = [
        ("REPORTED BY", content.reported_by),
        ("PROJECT FOREMAN", content.project_foreman),
        ("WEATHER", content.weather),
    ]
    wrapped = [(label, wrap_text(value or DASH, VALUE, col_w - 5)) for label, value in items]
    line_count = max(len(lines) for _, lines in wrapped)

    cursor.ensure_space(16)
    label_style = TextStyle("Helvetica-Bold", 7, MED)
    for i, (label, _) in enumerate(wrapped):
        cursor.page.text(m + i * col_w, cursor.y, label, label_style)
    cursor.advance(5)

    for li in range(line_count):
        cursor.ensure_space(5)
        for i, (_, lines) in enumerate(wrapped):
            if li < len(lines):
                cursor.page.text(m + i * col_w, cursor.y, lines[li], VALUE)
        cursor.advance(5)

    used = 5 + 5 * line_count
    cursor.advance(max(16, used + 1) - used)


def _daily_report_progress(cursor: LayoutCursor, content: DailyReportContent):
    section_bar(cursor, "PROGRESS", DAILY_REPORT_THEME)
    m, cw = cursor.doc.margin, cursor.doc.content_width
    label_style = TextStyle("Helvetica-Bold", 7.5, MED)
    divider = LineStyle(DIVIDER, 0.2)
    items = [
        ("PROGRESS", content.progress),
        ("DELAYS", content.delays),
        ("SAFETY", content.safety),
        ("MATERIALS USED", content.materials_used),
        ("EMPLOYEES", content.employees),
    ]
    for label, value in items:
        if not (value or "").strip():
            continue
        text_block(
            cursor, label, value,
            label_style=label_style, width=cw - 4,
            needed=18, label_gap=4.5, line_height=5.5, after=2,
        )
        cursor.page.line(m, cursor.y - 1, m + cw, cursor.y - 1, divider)
        cursor.advance(1)


def _daily_report_photos(cursor: LayoutCursor, photo_urls: list[str]):
    """Two-up grid; every photo is fit inside a 4:3 cell."""
    doc = cursor.doc
    photos = []
    for n, url in enumerate(photo_urls):
        result = _load(doc, f"photo_{n}", url)
        if result.loaded:
            photos.append(result.image)
    if not photos:
        return

    cursor.ensure_space(20)
    section_bar(cursor, "PHOTOS", DAILY_REPORT_THEME)

    gap = 4
    cell_w = (doc.content_width - gap) / 2
    cell_h = cell_w * 0.75
    for i, image in enumerate(photos):
        col = i % 2
        if col == 0:
            cursor.ensure_space(cell_h + 6)
        w, h = aspect_fit(image.width, image.height, cell_w, cell_h)
        cursor.page.image(image, doc.margin + col * (cell_w + gap), cursor.y, w, h)
        if col == 1 or i == len(photos) - 1:
            cursor.advance(cell_h + gap)


def build_daily_report_document(
    content: DailyReportContent,
    photo_urls: list[str] | None = None,
    *,
    generated_on: date | None = None,
) -> Document:
    doc = Document(margin=18.0)
    cursor = LayoutCursor(doc)
    _daily_report_header(cursor, content)
    _daily_report_crew(cursor, content)
    _daily_report_progress(cursor, content)
    _daily_report_photos(cursor, list(photo_urls or []))
    return _finish(doc, DAILY_REPORT_THEME, generated_on, "daily report")


# -----------------------------
# Job Safety Analysis
# -----------------------------
def _jsa_details(cursor: LayoutCursor, content: JsaReportContent):
    section_title(cursor, "PROJECT DETAILS", JSA_THEME)
    field_row(cursor, "Date", _display_date(content.date))
    field_row(cursor, "Project", content.project_name or DASH)
    field_row(cursor, "Address", content.address or DASH)
    field_row(cursor, "Weather", content.weather or DASH)

    section_title(cursor, "PERSONNEL", JSA_THEME)
    field_row(cursor, "Prepared By", content.prepared_by or DASH)
    field_row(cursor, "Site Supervisor", content.site_supervisor or DASH)
    field_row(cursor, "Competent Person", content.competent_person or DASH)


def _jsa_tasks(cursor: LayoutCursor, content: JsaReportContent):
    label_style = TextStyle("Helvetica-Bold", 8.5, DARK)
    for task in content.tasks:
        section_title(cursor, f"TASK: {task.name.upper()}", JSA_THEME)
        text_block(cursor, "Hazards", task.hazards, label_style=label_style)
        text_block(cursor, "Precautions", task.precautions, label_style=label_style)
        text_block(cursor, "PPE Required", task.ppe, label_style=label_style)


def _jsa_signatures(cursor: LayoutCursor, content: JsaReportContent):
    doc = cursor.doc
    m, cw = doc.margin, doc.content_width

    cursor.ensure_space(50)
    cursor.advance(8)
    section_title(cursor, "EMPLOYEE ACKNOWLEDGMENT & SIGNATURES", JSA_THEME)

    ack_style = TextStyle("Helvetica", 9, DARK)
    for line in wrap_text(JSA_ACKNOWLEDGMENT, ack_style, cw):
        cursor.ensure_space(5)
        cursor.page.text(m, cursor.y, line, ack_style)
        cursor.advance(4.5)
    cursor.advance(5)

    rule = LineStyle(LABEL_GRAY, 0.3)
    filled = [s for s in content.signatures if s.name or s.signature]
    if filled:
        name_style = TextStyle("Helvetica", 8, DARK)
        for n, sig in enumerate(filled):
            cursor.ensure_space(SIGNATURE_H + 14)
            if sig.signature:
                result = _load(doc, f"signature_{n}", sig.signature)
                if result.loaded:
                    w, h = aspect_fit(result.image.width, result.image.height, SIGNATURE_W, SIGNATURE_H)
                    cursor.page.image(result.image, m, cursor.y, w, h)
            cursor.page.line(m, cursor.y + SIGNATURE_H + 1, m + SIGNATURE_W, cursor.y + SIGNATURE_H + 1, rule)
            cursor.page.text(m, cursor.y + SIGNATURE_H + 5.5, sig.name, name_style)
            cursor.advance(SIGNATURE_H + 12)
        return

    # Nobody signed digitally: leave blank lines to sign on paper.
    line_w = (cw - 10) / 2
    role_style = TextStyle("Helvetica", 7.5, LABEL_GRAY)
    for i in range(0, len(JSA_SIGNATURE_ROLES), 2):
        cursor.ensure_space(20)
        y = cursor.y
        for role, x in zip(JSA_SIGNATURE_ROLES[i:i + 2], (m, m + line_w + 10)):
            cursor.page.line(x, y + 8, x + line_w, y + 8, rule)
            cursor.page.text(x, y + 12, role, role_style)
            cursor.page.text(x, y + 16, "Date: _______________", role_style)
        cursor.advance(24)


def build_jsa_document(
    content: JsaReportContent,
    logo_url: str | None = None,
    *,
    generated_on: date | None = None,
) -> Document:
    doc = Document()
    cursor = LayoutCursor(doc)
    header_block(cursor, "Job Safety Analysis", content.project_name or DASH, _load(doc, "logo", logo_url), JSA_THEME)
    _jsa_details(cursor, content)
    _jsa_tasks(cursor, content)
    _jsa_signatures(cursor, content)
    return _finish(doc, JSA_THEME, generated_on, "JSA report")


# -----------------------------
# PDF output
# -----------------------------
def _draw_op(pdf, op, page_h: float):
    if isinstance(op, TextOp):
        pdf.setFont(op.style.font, op.style.size)
        pdf.setFillColor(op.style.color)
        if op.style.align == "right":
            pdf.drawRightString(op.x * mm, (page_h - op.y) * mm, op.text)
        else:
            pdf.drawString(op.x * mm, (page_h - op.y) * mm, op.text)
    elif isinstance(op, LineOp):
        pdf.setStrokeColor(op.style.color)
        pdf.setLineWidth(op.style.width * mm)
        pdf.line(op.x1 * mm, (page_h - op.y1) * mm, op.x2 * mm, (page_h - op.y2) * mm)
    elif isinstance(op, RectOp):
        pdf.setFillColor(op.fill)
        pdf.rect(op.x * mm, (page_h - op.y - op.h) * mm, op.w * mm, op.h * mm, stroke=0, fill=1)
    elif isinstance(op, ImageOp):
        img = ImageReader(io.BytesIO(op.image.data))
        pdf.drawImage(
            img,
            op.x * mm,
            (page_h - op.y - op.h) * mm,
            width=op.w * mm,
            height=op.h * mm,
            mask="auto",
        )
    else:
        raise TypeError(f"Unknown drawing command: {op!r}")


def render_pdf(document: Document, title: str = "") -> bytes:
    """Replay every page's drawing commands onto a reportlab canvas."""
    buf = io.BytesIO()
    page_h = document.page_height
    pdf = canvas.Canvas(buf, pagesize=(document.page_width * mm, page_h * mm))
    if title:
        pdf.setTitle(title)
    for page in document.pages:
        for op in page.ops:
            _draw_op(pdf, op, page_h)
        pdf.showPage()
    pdf.save()
    return buf.getvalue()


def generate_timecard_pdf(content: TimecardContent, logo_url: str | None = None, *, generated_on: date | None = None):
    doc = build_timecard_document(content, logo_url, generated_on=generated_on)
    fname = document_filename("timecard", content.project_name, content.date, "timecard")
    return fname, render_pdf(doc, f"Timecard - {content.project_name or 'Draft'}")


def generate_receipt_pdf(
    content: ReceiptContent,
    photo_url: str | None = None,
    logo_url: str | None = None,
    *,
    generated_on: date | None = None,
):
    doc = build_receipt_document(content, photo_url, logo_url, generated_on=generated_on)
    fname = document_filename("receipt", content.vendor_name, content.receipt_date, "receipt")
    return fname, render_pdf(doc, f"Receipt - {content.vendor_name or 'Draft'}")


def generate_daily_report_pdf(
    content: DailyReportContent,
    photo_urls: list[str] | None = None,
    *,
    generated_on: date | None = None,
):
    doc = build_daily_report_document(content, photo_urls, generated_on=generated_on)
    fname = document_filename("daily-report", content.project_name, content.date, "report")
    return fname, render_pdf(doc, f"Daily Field Report - {content.project_name or 'Draft'}")


def generate_jsa_pdf(content: JsaReportContent, logo_url: str | None = None, *, generated_on: date | None = None):
    doc = build_jsa_document(content, logo_url, generated_on=generated_on)
    fname = document_filename("jsa-report", content.project_name, content.date, "jsa-report")
    return fname, render_pdf(doc, f"Job Safety Analysis - {content.project_name or 'Draft'}")


def generate_post_pdf(post: FeedPost, logo_url: str | None = None, *, generated_on: date | None = None):
    """
    Render the printable document for a feed post.

    Returns: (download filename, pdf bytes).
    """
    content = post.content or {}
    photos = [u for u in (post.photo_urls or []) if u]

    if post.post_type == "timecard":
        return generate_timecard_pdf(TimecardContent.from_dict(content), logo_url, generated_on=generated_on)
    if post.post_type == "receipt":
        photo_url = photos[0] if photos else None
        return generate_receipt_pdf(ReceiptContent.from_dict(content), photo_url, logo_url, generated_on=generated_on)
    if post.post_type == "daily_report":
        return generate_daily_report_pdf(DailyReportContent.from_dict(content), photos, generated_on=generated_on)
    if post.post_type == "jsa_report":
        return generate_jsa_pdf(JsaReportContent.from_dict(content), logo_url, generated_on=generated_on)
    raise ValueError(f"No printable document for post type: {post.post_type!r}")
