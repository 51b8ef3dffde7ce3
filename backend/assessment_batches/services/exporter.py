"""
Batch Exporter - CSV and single-page PDF exports of a batch.

CSV rows use the *stored* values of every record, absent students
included. The PDF is a picture of the table as it is shown on screen
(absent students total 0), rendered at its natural width and placed on a
page with exactly the image's pixel dimensions.
"""

import csv
import io
import re
import datetime as dt
from typing import List, Optional, Sequence

from PIL import Image, ImageDraw, ImageFont
from pydantic import BaseModel
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from assessment_batches.logging_config import get_logger, log_with_context
from assessment_batches.schemas import AssessmentRecord

logger = get_logger("export")

BACKGROUND = "#16292E"
HEADER_BACKGROUND = "#1F3A40"
TEXT_COLOR = "#FFFFFF"
MUTED_COLOR = "#9FB3B8"
GRID_COLOR = "#2E4E55"
ABSENT_COLOR = "#E57373"

CELL_PADDING_X = 12
CELL_PADDING_Y = 8
MARGIN = 24
MIN_WIDTH = 1024


def format_number(value) -> str:
    value = float(value or 0)
    return str(int(value)) if value.is_integer() else "{:g}".format(value)


def export_filename(title: str, date: dt.date, extension: str) -> str:
    """Whitespace runs in the title become underscores: 'Spring Eval' -> Spring_Eval_2024-03-01.csv"""
    return "{}_{}.{}".format(re.sub(r"\s+", "_", title), date.isoformat(), extension)


def student_label(record: AssessmentRecord) -> str:
    """Student name followed by the responsible coach's first name, if any."""
    name = record.student_name or "Unknown"
    coach = record.responsible_coach_name
    if coach:
        return "{} ({})".format(name, coach.split(" ")[0])
    return name


def build_csv_rows(title: str, date: dt.date, skill_names: Sequence[str],
                   records: Sequence[AssessmentRecord],
                   responsible_coach: Optional[str] = None,
                   assessing_coach: Optional[str] = None,
                   include_preamble: bool = True) -> List[List[str]]:
    """Rows of the CSV export, preamble first, then header and one row per record."""
    rows = []
    if include_preamble:
        rows.append(["Assessment: {}".format(title)])
        rows.append(["Date: {}".format(date.isoformat())])
        if responsible_coach:
            rows.append(["Responsible Coach: {}".format(responsible_coach)])
        if assessing_coach:
            rows.append(["Assessing Coach: {}".format(assessing_coach)])
        rows.append([])

    rows.append(["Student", *skill_names, "Total"])
    for record in records:
        scores = {s.name: s.score for s in record.skills}
        rows.append([
            student_label(record),
            *[format_number(scores.get(name, 0)) for name in skill_names],
            format_number(record.total_score),
        ])
    return rows


def export_csv(title: str, date: dt.date, skill_names: Sequence[str],
               records: Sequence[AssessmentRecord], **kwargs) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerows(build_csv_rows(title, date, skill_names, records, **kwargs))

    log_with_context(logger, "INFO", "Exported batch as CSV",
                     context={"title": title, "date": date.isoformat()},
                     extra_data={"records": len(records), "skills": len(skill_names)})
    return buffer.getvalue()


# ── Document export ──────────────────────────────────────────


class PdfExport(BaseModel):
    filename: str
    content: bytes
    width: int
    height: int
    orientation: str


def _text_width(draw: ImageDraw.ImageDraw, text: str, font) -> int:
    return int(round(draw.textlength(text, font=font)))


def render_table_image(title: str, date: dt.date, skill_names: Sequence[str],
                       records: Sequence[AssessmentRecord],
                       responsible_coach: Optional[str] = None,
                       assessing_coach: Optional[str] = None,
                       pixel_ratio: int = 2) -> Image.Image:
    """
    Draw the visible batch table (display values) on a flat RGB image.

    The image is as wide as its content needs, never narrower than the
    desktop layout width.
    """
    font_size = 14 * pixel_ratio
    title_size = 22 * pixel_ratio
    font = ImageFont.load_default(size=font_size)
    title_font = ImageFont.load_default(size=title_size)
    pad_x = CELL_PADDING_X * pixel_ratio
    pad_y = CELL_PADDING_Y * pixel_ratio
    margin = MARGIN * pixel_ratio

    scratch = ImageDraw.Draw(Image.new("RGB", (1, 1)))
    line_height = font_size + 2 * pad_y

    header = ["Student", *skill_names, "Total"]
    body = []
    for record in records:
        scores = {s.name: s.score for s in record.skills}
        label = student_label(record) + (" (absent)" if record.is_absent else "")
        body.append((record.is_absent, [
            label,
            *[format_number(scores.get(name, 0)) for name in skill_names],
            format_number(record.display_total),
        ]))

    col_widths = [_text_width(scratch, text, font) + 2 * pad_x for text in header]
    for _, cells in body:
        for i, text in enumerate(cells):
            col_widths[i] = max(col_widths[i], _text_width(scratch, text, font) + 2 * pad_x)

    average = (sum(r.display_total for r in records) / len(records)) if records else 0
    info_lines = ["{}  |  {}  |  {} Gymnasts  |  Avg {:.1f}".format(
        title, date.strftime("%B %d, %Y"), len(records), average)]
    if responsible_coach or assessing_coach:
        info_lines.append("Responsible: {}   Assessing: {}".format(
            responsible_coach or "-", assessing_coach or "-"))

    table_width = sum(col_widths)
    info_width = max(_text_width(scratch, line, title_font) for line in info_lines)
    width = max(table_width, info_width) + 2 * margin
    width = max(width, MIN_WIDTH * pixel_ratio)
    info_height = len(info_lines) * (title_size + pad_y)
    height = margin + info_height + pad_y + line_height * (len(body) + 1) + margin

    image = Image.new("RGB", (width, height), BACKGROUND)
    draw = ImageDraw.Draw(image)

    y = margin
    for line in info_lines:
        draw.text((margin, y), line, font=title_font, fill=TEXT_COLOR)
        y += title_size + pad_y
    y += pad_y

    draw.rectangle([margin, y, margin + table_width, y + line_height], fill=HEADER_BACKGROUND)
    rows = [(False, header)] + body
    for index, (absent, cells) in enumerate(rows):
        x = margin
        for col, text in enumerate(cells):
            color = MUTED_COLOR if index == 0 else (ABSENT_COLOR if absent else TEXT_COLOR)
            draw.text((x + pad_x, y + pad_y), text, font=font, fill=color)
            x += col_widths[col]
        y += line_height
        draw.line([margin, y, margin + table_width, y], fill=GRID_COLOR, width=pixel_ratio)

    return image


def image_to_pdf(image: Image.Image) -> bytes:
    """Single-page PDF whose page size equals the image size in pixels."""
    width, height = image.size
    buffer = io.BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=(width, height))
    pdf.drawImage(ImageReader(image), 0, 0, width=width, height=height)
    pdf.showPage()
    pdf.save()
    return buffer.getvalue()


def export_pdf(title: str, date: dt.date, skill_names: Sequence[str],
               records: Sequence[AssessmentRecord],
               responsible_coach: Optional[str] = None,
               assessing_coach: Optional[str] = None,
               pixel_ratio: int = 2) -> PdfExport:
    image = render_table_image(title, date, skill_names, records,
                               responsible_coach=responsible_coach,
                               assessing_coach=assessing_coach,
                               pixel_ratio=pixel_ratio)
    width, height = image.size
    orientation = "landscape" if width > height else "portrait"
    content = image_to_pdf(image)

    log_with_context(logger, "INFO", "Exported batch as PDF",
                     context={"title": title, "date": date.isoformat()},
                     extra_data={"width": width, "height": height, "orientation": orientation,
                                 "bytes": len(content)})
    return PdfExport(
        filename=export_filename(title, date, "pdf"),
        content=content,
        width=width,
        height=height,
        orientation=orientation,
    )
