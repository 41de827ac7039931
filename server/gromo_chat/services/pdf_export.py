"""Chat transcript export to PDF."""
from __future__ import annotations

import base64
import logging
from typing import Iterable, Mapping

from fpdf import FPDF
from fpdf.enums import MethodReturnValue

logger = logging.getLogger(__name__)

# Layout in millimetres on an A4 portrait page.
MARGIN_X = 20
TOP_Y = 20
BOTTOM_Y = 270
TEXT_WIDTH = 170
LINE_HEIGHT = 7
MESSAGE_SPACING = 10
TITLE_SPACING = 15


def _latin1(text: str) -> str:
    # Core PDF fonts only cover Latin-1.
    return text.encode("latin-1", "replace").decode("latin-1")


def render_transcript_pdf(
    messages: Iterable[Mapping[str, str]],
    *,
    assistant_name: str = "Gromo GPT",
    title: str | None = None,
) -> bytes:
    """Lay out ``{"role", "content"}`` messages as a paged PDF document."""

    heading = title or f"{assistant_name} - Chat Export"
    pdf = FPDF(orientation="P", unit="mm", format="A4")
    pdf.set_auto_page_break(False)
    pdf.set_title(heading)
    pdf.add_page()

    y = TOP_Y
    pdf.set_font("Helvetica", size=20)
    pdf.text(MARGIN_X, y, _latin1(heading))
    y += TITLE_SPACING

    count = 0
    for message in messages:
        count += 1
        if y > BOTTOM_Y:
            pdf.add_page()
            y = TOP_Y

        label = "You" if message.get("role") == "user" else assistant_name
        pdf.set_font("Helvetica", style="B", size=12)
        pdf.text(MARGIN_X, y, _latin1(f"{label}:"))
        y += LINE_HEIGHT

        pdf.set_font("Helvetica", size=12)
        content = _latin1(message.get("content") or "")
        lines = pdf.multi_cell(TEXT_WIDTH, LINE_HEIGHT, content, dry_run=True, output=MethodReturnValue.LINES)
        for line in lines:
            if y > BOTTOM_Y:
                pdf.add_page()
                y = TOP_Y
            pdf.text(MARGIN_X, y, line)
            y += LINE_HEIGHT
        y += MESSAGE_SPACING

    logger.info("Exported %d messages to a %d page PDF", count, pdf.page)
    return bytes(pdf.output())


def export_transcript_base64(messages: Iterable[Mapping[str, str]], *, assistant_name: str = "Gromo GPT") -> str:
    return base64.b64encode(render_transcript_pdf(messages, assistant_name=assistant_name)).decode("ascii")
