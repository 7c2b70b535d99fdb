"""
Assessment report PDF.

``report_sections`` turns a hydrated assessment into titled blocks of text
lines; ``build_assessment_report`` lays them out on A4 with reportlab.
Vehicle images are referenced by URL inside outlined placeholder boxes.
"""
import io
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib.utils import simpleSplit
from reportlab.pdfgen import canvas
from slugify import slugify

from ..config import settings
from ..services.errors import ValidationFailed
from ..services.workflow import COMPLETION_DETAIL_FIELDS

NOT_PROVIDED = "Not provided"

MARGIN = 20 * mm
IMAGE_W = 80 * mm
IMAGE_H = 60 * mm
IMAGE_GAP = 10 * mm
IMAGES_PER_ROW = 2
FONT = "Helvetica"
FONT_BOLD = "Helvetica-Bold"
BRAND_RED = colors.Color(220 / 255, 38 / 255, 38 / 255)

Section = Tuple[str, List[str]]


def _or_default(value: Any, default: str = NOT_PROVIDED) -> str:
    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    return str(value)


def _title_case(value: Optional[str]) -> str:
    return " ".join(w.capitalize() for w in (value or "").replace("_", " ").split()) or NOT_PROVIDED


def format_money(value: Optional[float], currency: Optional[str] = None) -> str:
    currency = currency or settings.report_currency
    if value is None:
        return NOT_PROVIDED
    number = float(value)
    if number.is_integer():
        return f"{currency} {number:,.0f}"
    return f"{currency} {number:,.2f}"


def _format_date(value: Any) -> str:
    if isinstance(value, (date, datetime)):
        return value.strftime("%Y-%m-%d")
    if isinstance(value, str) and value:
        return value[:10]
    return NOT_PROVIDED


def registration_slug(record: Dict[str, Any]) -> str:
    """ASCII letters and digits only, safe for storage keys and headers."""
    registration = (record.get("vehicle") or {}).get("registration_number") or ""
    return slugify(registration, lowercase=False, separator="", regex_pattern=r"[^A-Za-z0-9]") or "unknown"


def report_filename(record: Dict[str, Any]) -> str:
    return f"assessment_report_{registration_slug(record)}_{record['id']}.pdf"


def report_sections(record: Dict[str, Any]) -> List[Section]:
    vehicle = record.get("vehicle")
    customer = record.get("customer")
    assessor = record.get("assessor")
    if not vehicle:
        raise ValidationFailed("Vehicle data is required")
    if not customer:
        raise ValidationFailed("Customer data is required")
    if not assessor:
        raise ValidationFailed("Assessor data is required")

    mileage = vehicle.get("mileage")
    sections: List[Section] = [
        (
            "Report Details",
            [
                f"Report ID: {record['id']}",
                f"Assessment Date: {_format_date(record.get('completion_date'))}",
                f"Assessment Type: {_title_case(record.get('assessment_type'))}",
            ],
        ),
        (
            "Vehicle Information",
            [
                f"Make: {vehicle.get('make')}",
                f"Model: {vehicle.get('model')}",
                f"Year: {vehicle.get('year')}",
                f"Registration: {vehicle.get('registration_number')}",
                f"VIN: {_or_default(vehicle.get('vin'))}",
                f"Mileage: {f'{mileage:,} km' if mileage is not None else NOT_PROVIDED}",
                f"Color: {_or_default(vehicle.get('color'))}",
            ],
        ),
        (
            "Customer Information",
            [
                f"Name: {_or_default(customer.get('full_name'))}",
                f"Email: {_or_default(customer.get('email'))}",
                f"Phone: {_or_default(customer.get('phone'))}",
                f"Location: {_or_default(customer.get('city'))}, {_or_default(customer.get('province'))}",
            ],
        ),
        (
            "Assessor Information",
            [
                f"Name: {_or_default(assessor.get('full_name'))}",
                f"Email: {_or_default(assessor.get('email'))}",
                f"Phone: {_or_default(assessor.get('phone'))}",
            ],
        ),
        (
            "Assessment Results",
            [
                f"Vehicle Value: {format_money(record.get('vehicle_value'))}",
                f"Assessment Notes: {_or_default(record.get('assessment_notes'), 'No notes provided')}",
            ],
        ),
    ]

    details = record.get("completion_details") or {}
    detail_lines = [
        f"{_title_case(field)}: {details[field]}"
        for field in COMPLETION_DETAIL_FIELDS
        if details.get(field) not in (None, "")
    ]
    if detail_lines:
        sections.append(("Assessment Details", detail_lines))
    return sections


def report_image_urls(record: Dict[str, Any]) -> List[str]:
    vehicle = record.get("vehicle") or {}
    urls = []
    for n in range(1, 7):
        url = vehicle.get(f"image_{n}_url")
        if url and url.strip():
            urls.append(url)
    return urls


class _ReportCanvas:
    """Cursor-based writer that breaks pages and stamps the footer on each."""

    def __init__(self, buf: io.BytesIO, generated_at: datetime, compress: bool):
        self.c = canvas.Canvas(buf, pagesize=A4, pageCompression=1 if compress else 0)
        self.page_width, self.page_height = A4
        self.content_width = self.page_width - 2 * MARGIN
        self.bottom = MARGIN + 10 * mm
        self.generated_at = generated_at
        self.y = self.page_height - MARGIN

    def _footer(self) -> None:
        c = self.c
        c.setFont(FONT, 10)
        c.setFillColor(colors.grey)
        footer_y = MARGIN / 2
        c.drawString(MARGIN, footer_y, f"Generated on {self.generated_at.strftime('%Y-%m-%d %H:%M')}")
        c.drawRightString(self.page_width - MARGIN, footer_y, f"{settings.report_brand_name} Assessment Report")
        c.setFillColor(colors.black)

    def new_page(self) -> None:
        self._footer()
        self.c.showPage()
        self.y = self.page_height - MARGIN

    def ensure(self, height: float) -> None:
        if self.y - height < self.bottom:
            self.new_page()

    def header(self) -> None:
        c = self.c
        self.y -= 24
        c.setFont(FONT_BOLD, 24)
        c.setFillColor(BRAND_RED)
        c.drawString(MARGIN, self.y, settings.report_brand_name)
        self.y -= 15 * mm
        c.setFont(FONT_BOLD, 16)
        c.setFillColor(colors.black)
        c.drawString(MARGIN, self.y, "Vehicle Assessment Report")
        self.y -= 20 * mm

    def section(self, title: str, lines: List[str]) -> None:
        c = self.c
        self.ensure(8 * mm + 6 * mm)
        c.setFont(FONT_BOLD, 12)
        c.drawString(MARGIN, self.y, f"{title}:")
        self.y -= 8 * mm
        c.setFont(FONT, 12)
        for line in lines:
            for wrapped in simpleSplit(line, FONT, 12, self.content_width) or [""]:
                self.ensure(6 * mm)
                c.setFont(FONT, 12)
                c.drawString(MARGIN, self.y, wrapped)
                self.y -= 6 * mm
        self.y -= 9 * mm

    def image_grid(self, urls: List[str]) -> None:
        if not urls:
            return
        c = self.c
        self.ensure(10 * mm + IMAGE_H + 12 * mm)
        c.setFont(FONT_BOLD, 12)
        c.drawString(MARGIN, self.y, "Vehicle Images:")
        self.y -= 10 * mm
        row_height = IMAGE_H + 12 * mm
        for index, url in enumerate(urls):
            col = index % IMAGES_PER_ROW
            if col == 0:
                self.ensure(row_height)
            x = MARGIN + col * (IMAGE_W + IMAGE_GAP)
            top = self.y
            c.setStrokeColor(colors.black)
            c.rect(x, top - IMAGE_H, IMAGE_W, IMAGE_H, stroke=1, fill=0)
            c.setFont(FONT, 8)
            c.drawString(x + 5 * mm, top - IMAGE_H - 5 * mm, f"Image {index + 1}")
            caption = simpleSplit(f"(Available at: {url})", FONT, 8, IMAGE_W - 5 * mm)
            for i, part in enumerate(caption[:2]):
                c.drawString(x + 5 * mm, top - IMAGE_H - (9 + 3.5 * i) * mm, part)
            if col == IMAGES_PER_ROW - 1 or index == len(urls) - 1:
                self.y -= row_height

    def finish(self) -> None:
        self._footer()
        self.c.showPage()
        self.c.save()


def build_assessment_report(
    record: Dict[str, Any],
    generated_at: Optional[datetime] = None,
    compress: bool = True,
) -> bytes:
    """Render a hydrated, serialized assessment to PDF bytes."""
    sections = report_sections(record)
    buf = io.BytesIO()
    writer = _ReportCanvas(buf, generated_at or datetime.now(), compress)
    writer.c.setTitle(f"{settings.report_brand_name} Vehicle Assessment Report")
    writer.c.setAuthor(settings.report_brand_name)
    writer.header()
    for title, lines in sections:
        writer.section(title, lines)
    writer.image_grid(report_image_urls(record))
    writer.finish()
    return buf.getvalue()
