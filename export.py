"""PDF health report built from the stored prediction history.

Layout works in millimetres from the top-left corner of an A4 page, breaking to
a new page once the cursor passes ``PAGE_BOTTOM``. ``build_report_pages`` does
the layout only, so it can be checked without rendering a PDF.
"""
import io
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas

from config import _from_utc_storage

REPORT_TITLE = "CareScan Health Report"
PAGE_TOP = 20
PAGE_BOTTOM = 270
FONT = "Helvetica"

Line = Tuple[float, float, int, str]  # x, y, font size, text


def _fmt_ts(ts) -> str:
    dt = _from_utc_storage(ts)
    return dt.strftime("%Y-%m-%d %H:%M:%S") if dt else "Unknown date"


def build_report_pages(predictions: list, generated_at: Optional[datetime] = None) -> List[List[Line]]:
    generated_at = generated_at or datetime.now()
    pages: List[List[Line]] = [[]]
    y = 45

    def emit(x, size, text):
        pages[-1].append((x, y, size, text))

    def break_if_full():
        nonlocal y
        if y > PAGE_BOTTOM:
            pages.append([])
            y = PAGE_TOP

    pages[0].append((20, 20, 20, REPORT_TITLE))
    pages[0].append((20, 30, 10, f"Generated: {generated_at.strftime('%Y-%m-%d %H:%M:%S')}"))

    if not predictions:
        emit(20, 10, "No predictions available.")
        return pages

    for idx, pred in enumerate((p for p in predictions if isinstance(p, dict)), start=1):
        break_if_full()
        emit(20, 14, f"{idx}. {pred.get('type')}")
        y += 7
        emit(25, 10, f"Date: {_fmt_ts(pred.get('timestamp'))}")
        y += 6
        emit(25, 10, f"Result: {pred.get('result') or 'N/A'}")
        y += 6

        params = pred.get("parameters")
        if isinstance(params, dict) and params:
            emit(25, 10, "Parameters:")
            y += 6
            for key, value in params.items():
                break_if_full()
                emit(30, 10, f"  {key}: {value}")
                y += 5

        details = pred.get("details")
        if details:
            break_if_full()
            first, *rest = str(details).splitlines() or [""]
            emit(25, 10, f"Details: {first}")
            y += 6
            for extra in rest:
                break_if_full()
                emit(30, 10, extra)
                y += 5
        y += 5
    return pages


def render_report_pdf(predictions: list, generated_at: Optional[datetime] = None) -> bytes:
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=A4)
    _width, height = A4
    c.setTitle(REPORT_TITLE)
    for page in build_report_pages(predictions, generated_at):
        for x, y, size, text in page:
            c.setFont(FONT, size)
            c.drawString(x * mm, height - y * mm, text)
        c.showPage()
    c.save()
    return buf.getvalue()


def report_filename(today: Optional[datetime] = None) -> str:
    today = today or datetime.now(timezone.utc)
    return f"CareScan_Report_{today.strftime('%Y-%m-%d')}.pdf"
