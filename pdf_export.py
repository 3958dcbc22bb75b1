"""
Study.AI - PDF Export
Lays out a generated test as a printable exam paper with an optional answer key
"""

import io
import random
import re
from datetime import date
from typing import List, Optional
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_LEFT
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import (
    HRFlowable,
    KeepTogether,
    PageBreak,
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)

from exam import (
    DEFAULT_WATERMARK_OPACITY,
    MAX_WATERMARK_OPACITY,
    MIN_WATERMARK_OPACITY,
    SECTIONS,
    TestData,
)

ROMAN = ["I", "II", "III", "IV", "V", "VI", "VII", "VIII"]
ANSWER_LINES = {"longQuestions": 6, "essays": 10}
ACCENT = colors.HexColor("#0891B2")
MUTED = colors.HexColor("#64748B")
CONTENT_WIDTH = A4[0] - 90


def _styles():
    base = getSampleStyleSheet()
    return {
        "ExamName": ParagraphStyle(
            "ExamName", parent=base["Title"], fontSize=20, leading=24,
            alignment=TA_CENTER, spaceAfter=4,
        ),
        "Title": ParagraphStyle(
            "TestTitle", parent=base["Heading2"], fontSize=14, leading=18,
            alignment=TA_CENTER, textColor=colors.HexColor("#0F172A"), spaceAfter=2,
        ),
        "Subtitle": ParagraphStyle(
            "Subtitle", parent=base["Normal"], fontSize=10, leading=13,
            alignment=TA_CENTER, textColor=MUTED, spaceAfter=6,
        ),
        "Section": ParagraphStyle(
            "Section", parent=base["Heading3"], fontSize=12, leading=15,
            textColor=ACCENT, spaceBefore=14, spaceAfter=8,
        ),
        "Question": ParagraphStyle(
            "Question", parent=base["Normal"], fontSize=10.5, leading=14,
            alignment=TA_LEFT, spaceAfter=4,
        ),
        "Option": ParagraphStyle(
            "Option", parent=base["Normal"], fontSize=10, leading=13, leftIndent=18,
        ),
        "Answer": ParagraphStyle(
            "Answer", parent=base["Normal"], fontSize=9.5, leading=12.5, leftIndent=12,
            spaceAfter=5,
        ),
    }


def _p(text: str, style) -> Paragraph:
    return Paragraph(escape(text).replace("\n", "<br/>"), style)


def _answer_lines(count: int) -> List:
    return [
        HRFlowable(width="100%", thickness=0.4, color=colors.HexColor("#CBD5E1"),
                   spaceBefore=14, spaceAfter=0)
        for _ in range(count)
    ]


def shuffled_matches(test: TestData) -> List[List[int]]:
    """
    Column B order for every matching block.

    Seeded by the test title so the paper and its answer key agree across
    exports of the same test.
    """
    rng = random.Random(test.title)
    orders = []
    for block in test.matching:
        order = list(range(len(block.pairs)))
        rng.shuffle(order)
        orders.append(order)
    return orders


def _section_flowables(test: TestData, section, styles, match_orders) -> List:
    items = getattr(test, section.attr)
    flow: List = []
    if section.key == "mcqs":
        for n, q in enumerate(items, 1):
            block = [_p(f"{n}. {q.question}", styles["Question"])]
            block += [_p(f"{chr(65 + i)}. {opt}", styles["Option"]) for i, opt in enumerate(q.options)]
            block.append(Spacer(1, 6))
            flow.append(KeepTogether(block))
    elif section.key == "trueFalse":
        for n, q in enumerate(items, 1):
            flow.append(_p(f"{n}. {q.statement}    ( True / False )", styles["Question"]))
    elif section.key == "fillInBlanks":
        for n, q in enumerate(items, 1):
            flow.append(_p(f"{n}. {q.sentence}", styles["Question"]))
    elif section.key == "matching":
        for block, order in zip(items, match_orders):
            rows = [[_p("Column A", styles["Question"]), _p("Column B", styles["Question"])]]
            for i, pair in enumerate(block.pairs):
                match = block.pairs[order[i]].match
                rows.append([
                    _p(f"{i + 1}. {pair.item}", styles["Question"]),
                    _p(f"{chr(65 + i)}. {match}", styles["Question"]),
                ])
            table = Table(rows, colWidths=[CONTENT_WIDTH / 2] * 2)
            table.setStyle(TableStyle([
                ("LINEBELOW", (0, 0), (-1, 0), 0.8, ACCENT),
                ("VALIGN", (0, 0), (-1, -1), "TOP"),
                ("BOTTOMPADDING", (0, 0), (-1, -1), 6),
            ]))
            flow.append(table)
    else:
        lines = ANSWER_LINES.get(section.key, 3)
        for n, q in enumerate(items, 1):
            flow.append(KeepTogether([_p(f"{n}. {q.question}", styles["Question"])] + _answer_lines(lines)))
            flow.append(Spacer(1, 8))
    return flow


def _answer_key_flowables(test: TestData, section, styles, match_orders) -> List:
    items = getattr(test, section.attr)
    flow: List = []
    for n, q in enumerate(items, 1):
        if section.key == "mcqs":
            letter = ""
            if q.answer in q.options:
                letter = f"{chr(65 + q.options.index(q.answer))}. "
            flow.append(_p(f"{n}. {letter}{q.answer}", styles["Answer"]))
        elif section.key == "trueFalse":
            flow.append(_p(f"{n}. {'True' if q.is_true else 'False'}", styles["Answer"]))
        elif section.key == "fillInBlanks":
            flow.append(_p(f"{n}. {q.answer}", styles["Answer"]))
        elif section.key == "matching":
            order = match_orders[n - 1]
            for i, pair in enumerate(q.pairs):
                letter = chr(65 + order.index(i))
                flow.append(_p(f"{i + 1} - {letter}  ({pair.item}: {pair.match})", styles["Answer"]))
        elif section.key == "essays":
            flow.append(_p(f"{n}. {q.key_points}", styles["Answer"]))
        else:
            flow.append(_p(f"{n}. {q.answer_key}", styles["Answer"]))
    return flow


def _page_decorator(watermark_text: str, opacity: float):
    def draw(canvas, doc):
        width, height = A4
        canvas.saveState()

        canvas.setFillColor(ACCENT)
        canvas.rect(0, height - 6, width, 6, fill=1, stroke=0)

        if watermark_text:
            canvas.saveState()
            canvas.setFillColor(colors.HexColor("#475569"))
            canvas.setFillAlpha(opacity)
            font_size = max(28, min(72, int(900 / max(len(watermark_text), 1))))
            canvas.setFont("Helvetica-Bold", font_size)
            canvas.translate(width / 2, height / 2)
            canvas.rotate(45)
            canvas.drawCentredString(0, 0, watermark_text)
            canvas.restoreState()

        canvas.setFont("Helvetica", 8)
        canvas.setFillColor(MUTED)
        canvas.drawString(45, 22, f"AI Generated Assessment // {date.today().isoformat()}")
        canvas.drawRightString(width - 45, 22, f"Page {doc.page}")
        canvas.restoreState()

    return draw


def generate_pdf(test: TestData, subtitle: Optional[str] = None, exam_name: Optional[str] = None,
                 watermark_text: Optional[str] = None,
                 watermark_opacity: float = DEFAULT_WATERMARK_OPACITY,
                 include_answers: bool = True) -> bytes:
    """
    Render the test as an A4 exam paper.

    :param subtitle: Overrides the test's own subtitle when given.
    :param exam_name: Printed above the title (e.g. "Midterm 2025").
    :param watermark_text: Drawn diagonally on every page when non-empty.
    :param watermark_opacity: Clamped to the config panel's 5%-50% range.
    :return: PDF bytes.
    """
    styles = _styles()
    opacity = max(MIN_WATERMARK_OPACITY, min(watermark_opacity, MAX_WATERMARK_OPACITY))
    match_orders = shuffled_matches(test)

    story: List = []
    if exam_name:
        story.append(_p(exam_name, styles["ExamName"]))
        story.append(_p(test.title, styles["Title"]))
    else:
        story.append(_p(test.title, styles["ExamName"]))

    story.append(_p(subtitle or test.subtitle or "Generated Examination Paper", styles["Subtitle"]))
    story.append(HRFlowable(width="100%", thickness=1.5, color=ACCENT, spaceBefore=4, spaceAfter=10))

    numeral = 0
    for section in SECTIONS:
        if not getattr(test, section.attr):
            continue
        story.append(_p(f"{ROMAN[numeral]}. {section.label}", styles["Section"]))
        story.extend(_section_flowables(test, section, styles, match_orders))
        numeral += 1

    if include_answers and test.question_count():
        story.append(PageBreak())
        story.append(_p("Answer Key", styles["ExamName"]))
        story.append(HRFlowable(width="100%", thickness=1.5, color=ACCENT, spaceBefore=4, spaceAfter=10))
        numeral = 0
        for section in SECTIONS:
            if not getattr(test, section.attr):
                continue
            story.append(_p(f"{ROMAN[numeral]}. {section.label}", styles["Section"]))
            story.extend(_answer_key_flowables(test, section, styles, match_orders))
            numeral += 1

    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=45,
        leftMargin=45,
        topMargin=0.7 * inch,
        bottomMargin=0.7 * inch,
        title=exam_name or test.title,
        author="Study.AI",
    )
    decorate = _page_decorator((watermark_text or "").strip(), opacity)
    doc.build(story, onFirstPage=decorate, onLaterPages=decorate)
    return buffer.getvalue()


def export_filename(test: TestData, exam_name: Optional[str] = None) -> str:
    base = (exam_name or test.title or "exam").strip()
    slug = re.sub(r"[^A-Za-z0-9]+", "_", base).strip("_")
    return f"{slug or 'exam'}.pdf"
