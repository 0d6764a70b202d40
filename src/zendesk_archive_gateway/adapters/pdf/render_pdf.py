"""
Ticket → PDF with the reportlab canvas.

Layout is done by hand on a top-down cursor (`y` grows down the page, converted to
reportlab's bottom-up coordinates only when drawing). Fonts are the standard Helvetica
family, so text is limited to the WinAnsi character set; anything else is replaced.
"""

from __future__ import annotations

import io
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime

from reportlab.lib.pagesizes import A4
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

from zendesk_archive_gateway.adapters.zendesk.models import Comment, Ticket
from zendesk_archive_gateway.domain.html_blocks import (
    BLOCK_HEADING,
    PdfBlock,
    PdfRun,
    parse_html_to_blocks,
)
from zendesk_archive_gateway.domain.tenant_models import RenderSettings
from zendesk_archive_gateway.domain.time_utils import format_local, language_of, now_utc

MARGIN = 50
LINE_BREAK_GUARD = 40
COMMENT_BREAK_GUARD = 80
LINE_HEIGHT_FACTOR = 1.4
BODY_FONT_SIZE = 9
HEADING_FONT_SIZE = 11
HEADER_FONT_SIZE = 10
HEADER_LINE_STEP = 13

INTERNAL_FILL = (240 / 255.0,) * 3
SEPARATOR_GREY = (200 / 255.0,) * 3

_FONTS = {
    (False, False): "Helvetica",
    (True, False): "Helvetica-Bold",
    (False, True): "Helvetica-Oblique",
    (True, True): "Helvetica-BoldOblique",
}


@dataclass(frozen=True, slots=True)
class Labels:
    title: str
    subject: str
    status: str
    created: str
    updated: str
    conversation: str
    internal: str


LABELS: dict[str, Labels] = {
    "is": Labels(
        title="Miði #{id}",
        subject="Efni:",
        status="Staða:",
        created="Stofnað:",
        updated="Uppfært:",
        conversation="Samskipti",
        internal="(innri athugasemd)",
    ),
    "en": Labels(
        title="Ticket #{id}",
        subject="Subject:",
        status="Status:",
        created="Created:",
        updated="Updated:",
        conversation="Conversation",
        internal="(internal)",
    ),
}


def labels_for(locale: str | None) -> Labels:
    return LABELS.get(language_of(locale), LABELS["en"])


def font_for(bold: bool, italic: bool) -> str:
    return _FONTS[(bool(bold), bool(italic))]


def pdf_safe(text: str) -> str:
    return text.encode("cp1252", errors="replace").decode("cp1252")


def wrap_runs(runs: Sequence[PdfRun], max_width: float, font_size: float) -> list[list[PdfRun]]:
    """
    Greedy word wrap over styled runs. Runs are split on space sequences (kept as their
    own parts); a line breaks before a non-space part that would overflow a non-empty
    line. A single overlong word still gets its own line.
    """
    lines: list[list[PdfRun]] = []
    line: list[PdfRun] = []
    width = 0.0

    for run in runs:
        font = font_for(run.bold, run.italic)
        for part in _split_spaces(run.text):
            part_width = stringWidth(part, font, font_size)
            if width + part_width > max_width and line and part.strip():
                lines.append(line)
                line = []
                width = 0.0
            line.append(PdfRun(part, run.bold, run.italic))
            width += part_width

    if line:
        lines.append(line)
    return lines or [[PdfRun("")]]


def _split_spaces(text: str) -> list[str]:
    parts: list[str] = []
    start = 0
    i = 0
    while i < len(text):
        if text[i] == " ":
            j = i
            while j < len(text) and text[j] == " ":
                j += 1
            if i > start:
                parts.append(text[start:i])
            parts.append(text[i:j])
            start = i = j
        else:
            i += 1
    if start < len(text):
        parts.append(text[start:])
    return parts


class _PageWriter:
    def __init__(self, buffer: io.BytesIO, *, title: str, author: str | None) -> None:
        self.width, self.height = A4
        self.content_width = self.width - 2 * MARGIN
        self.y = float(MARGIN)
        self.pages = 1
        self._canvas = canvas.Canvas(buffer, pagesize=A4, invariant=1)
        self._canvas.setTitle(pdf_safe(title))
        if author:
            self._canvas.setAuthor(pdf_safe(author))
        self._canvas.setCreator("zendesk-archive-gateway")

    def new_page(self) -> None:
        self._canvas.showPage()
        self.pages += 1
        self.y = float(MARGIN)

    def break_if_past(self, guard: float) -> None:
        if self.y > self.height - guard:
            self.new_page()

    def text(self, value: str, x: float, *, font: str = "Helvetica", size: float) -> float:
        safe = pdf_safe(value)
        self._canvas.setFont(font, size)
        self._canvas.drawString(x, self.height - self.y, safe)
        return stringWidth(safe, font, size)

    def text_right(self, value: str, *, font: str = "Helvetica", size: float) -> None:
        width = stringWidth(pdf_safe(value), font, size)
        self.text(value, self.width - MARGIN - width, font=font, size=size)

    def text_centered(self, value: str, *, font: str = "Helvetica", size: float) -> None:
        width = stringWidth(pdf_safe(value), font, size)
        self.text(value, (self.width - width) / 2, font=font, size=size)

    def fill_band(self, top: float, height: float) -> None:
        """Grey band spanning the content width plus 6pt bleed; `top` is cursor-space."""
        self._canvas.setFillColorRGB(*INTERNAL_FILL)
        self._canvas.rect(
            MARGIN - 6,
            self.height - (top + height),
            self.content_width + 12,
            height,
            stroke=0,
            fill=1,
        )
        self._canvas.setFillColorRGB(0, 0, 0)

    def rule(
        self,
        x1: float,
        x2: float,
        y: float,
        *,
        grey: tuple[float, ...] | None = None,
        width: float | None = None,
    ) -> None:
        self._canvas.saveState()
        if grey is not None:
            self._canvas.setStrokeColorRGB(*grey)
        if width is not None:
            self._canvas.setLineWidth(width)
        self._canvas.line(x1, self.height - y, x2, self.height - y)
        self._canvas.restoreState()

    def save(self) -> None:
        self._canvas.save()


def _render_blocks(page: _PageWriter, blocks: Sequence[PdfBlock], *, internal: bool) -> None:
    for block in blocks:
        x0 = MARGIN + block.indent
        font_size = HEADING_FONT_SIZE if block.type == BLOCK_HEADING else BODY_FONT_SIZE
        line_height = font_size * LINE_HEIGHT_FACTOR

        for line in wrap_runs(block.runs, page.content_width - block.indent, font_size):
            page.break_if_past(LINE_BREAK_GUARD)
            if internal:
                page.fill_band(page.y - (font_size + 1), line_height + 4)
            x = x0
            for segment in line:
                x += page.text(
                    segment.text, x, font=font_for(segment.bold, segment.italic), size=font_size
                )
            page.y += line_height

        page.y += 6 if block.type == BLOCK_HEADING else 2


def _render_header(
    page: _PageWriter,
    ticket: Ticket,
    settings: RenderSettings,
    labels: Labels,
    now: datetime,
) -> None:
    if settings.company_name:
        page.text_right(settings.company_name, size=10)
        page.y += 14
    page.text_right(format_local(now, locale=settings.locale, timezone=settings.timezone), size=8)
    page.y += 24

    page.text_centered(labels.title.format(id=ticket.id), size=18)
    page.y += 28

    page.text(f"{labels.subject} {ticket.subject or ''}", MARGIN, size=12)
    page.y += 16
    page.text(f"{labels.status} {ticket.status or ''}", MARGIN, size=10)
    page.y += 14
    created = format_local(ticket.created_at, locale=settings.locale, timezone=settings.timezone)
    page.text(f"{labels.created} {created}", MARGIN, size=10)
    page.y += 14
    if ticket.updated_at is not None:
        updated = format_local(
            ticket.updated_at, locale=settings.locale, timezone=settings.timezone
        )
        page.text(f"{labels.updated} {updated}", MARGIN, size=10)
        page.y += 14
    page.y += 14

    heading_width = page.text(labels.conversation, MARGIN, size=14)
    page.rule(MARGIN, MARGIN + heading_width, page.y + 2)
    page.y += 20


def _author_name(comment: Comment, user_map: Mapping[int, str]) -> str:
    if comment.author_id is None:
        return "User Unknown"
    return user_map.get(comment.author_id) or f"User {comment.author_id}"


def _render_comment(
    page: _PageWriter,
    comment: Comment,
    settings: RenderSettings,
    labels: Labels,
    user_map: Mapping[int, str],
) -> None:
    internal = comment.is_internal
    stamp = format_local(comment.created_at, locale=settings.locale, timezone=settings.timezone)
    header = f"{stamp} — {_author_name(comment, user_map)}"
    if internal:
        header = f"{header} {labels.internal}"

    page.break_if_past(COMMENT_BREAK_GUARD)
    if internal:
        page.fill_band(page.y - 18, 6)

    for line in wrap_runs([PdfRun(header, bold=True)], page.content_width, HEADER_FONT_SIZE):
        page.break_if_past(LINE_BREAK_GUARD)
        if internal:
            page.fill_band(page.y - 12, 17)
        text = "".join(run.text for run in line)
        page.text(text, MARGIN, font="Helvetica-Bold", size=HEADER_FONT_SIZE)
        page.y += HEADER_LINE_STEP
    page.y += 2

    _render_blocks(page, parse_html_to_blocks(comment.rich_body), internal=internal)

    if internal:
        page.fill_band(page.y - 4, 8)

    page.y += 6
    page.rule(MARGIN, page.width - MARGIN, page.y, grey=SEPARATOR_GREY, width=0.5)
    page.y += 14


def render_ticket_pdf(
    ticket: Ticket,
    comments: Sequence[Comment],
    settings: RenderSettings,
    *,
    user_map: Mapping[int, str] | None = None,
    now: datetime | None = None,
) -> bytes:
    """
    Render one ticket and its conversation. Internal notes are only included when
    `settings.include_internal_notes` is set. Pure apart from the clock (`now`).
    """
    labels = labels_for(settings.locale)
    users = user_map or {}
    buffer = io.BytesIO()
    page = _PageWriter(
        buffer,
        title=labels.title.format(id=ticket.id),
        author=settings.company_name,
    )

    _render_header(page, ticket, settings, labels, now or now_utc())

    for comment in comments:
        if comment.is_internal and not settings.include_internal_notes:
            continue
        _render_comment(page, comment, settings, labels, users)

    page.save()
    return buffer.getvalue()
