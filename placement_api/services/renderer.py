"""
Learning plan renderer - markdown document to PDF bytes

Only the markdown subset the plan prompts produce is handled: headings,
bullet lists, bold/italic spans and plain paragraphs.
"""
import logging
import re
from datetime import date
from io import BytesIO
from typing import Any, Dict, List, Optional

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import cm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"

_HEADING = re.compile(r"^(#{1,4})\s+(.*)$")
_BULLET = re.compile(r"^\s*[-*]\s+(.*)$")
_BOLD = re.compile(r"\*\*(.+?)\*\*")
_ITALIC = re.compile(r"(?<!\*)\*(?!\*)(.+?)(?<!\*)\*(?!\*)")
_LINK = re.compile(r"\[([^\]]+)\]\((https?://[^)\s]+)\)")
_SLUG = re.compile(r"[^a-z0-9]+")


def _escape(text: str) -> str:
    """Escape characters that reportlab's paragraph parser treats as markup"""
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def _inline(text: str) -> str:
    # Anything outside Latin-1 (emoji headings) has no glyph in the base fonts
    safe = _escape(text).encode("latin-1", "ignore").decode("latin-1")
    safe = _LINK.sub(r'<link href="\2" color="blue">\1</link>', safe)
    safe = _BOLD.sub(r"<b>\1</b>", safe)
    return _ITALIC.sub(r"<i>\1</i>", safe)


def get_plan_styles():
    styles = getSampleStyleSheet()
    styles.add(ParagraphStyle(
        name="PlanTitle",
        parent=styles["Title"],
        fontSize=18,
        alignment=TA_CENTER,
        spaceAfter=6,
    ))
    styles.add(ParagraphStyle(
        name="PlanMeta",
        parent=styles["Normal"],
        fontSize=10,
        textColor=colors.grey,
        alignment=TA_CENTER,
        spaceAfter=12,
    ))
    styles.add(ParagraphStyle(
        name="PlanBullet",
        parent=styles["Normal"],
        fontSize=10,
        leftIndent=14,
        bulletIndent=4,
        spaceAfter=3,
        leading=13,
    ))
    styles.add(ParagraphStyle(
        name="PlanBody",
        parent=styles["Normal"],
        fontSize=10,
        spaceAfter=4,
        leading=13,
    ))
    return styles


HEADING_STYLES = {1: "Heading1", 2: "Heading2", 3: "Heading3", 4: "Heading4"}


def _markdown_story(markdown: str, styles) -> List[Any]:
    story: List[Any] = []
    for line in markdown.splitlines():
        stripped = line.strip()
        if not stripped:
            story.append(Spacer(1, 0.15 * cm))
            continue

        heading = _HEADING.match(stripped)
        if heading:
            level = len(heading.group(1))
            story.append(Paragraph(_inline(heading.group(2)), styles[HEADING_STYLES[level]]))
            continue

        bullet = _BULLET.match(line)
        if bullet:
            story.append(Paragraph(_inline(bullet.group(1)), styles["PlanBullet"], bulletText="•"))
            continue

        story.append(Paragraph(_inline(stripped), styles["PlanBody"]))
    return story


def render_markdown_pdf(markdown: str, meta: Optional[Dict[str, Any]] = None) -> bytes:
    """
    Render a plan document to PDF

    Args:
        markdown: Stitched plan document
        meta: {goal, experience, score?} printed under the title

    Returns:
        PDF file contents
    """
    meta = meta or {}
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=2 * cm,
        leftMargin=2 * cm,
        topMargin=2 * cm,
        bottomMargin=2 * cm,
        title="Personalized Learning Plan",
    )

    styles = get_plan_styles()
    story: List[Any] = [Paragraph("Personalized Learning Plan", styles["PlanTitle"])]

    details = []
    if meta.get("goal"):
        details.append(f"Goal: {meta['goal']}")
    if meta.get("experience"):
        details.append(f"Experience: {meta['experience']}")
    if meta.get("score") is not None:
        details.append(f"Placement score: {meta['score']}%")
    if details:
        story.append(Paragraph(_inline(" | ".join(details)), styles["PlanMeta"]))

    story.extend(_markdown_story(markdown or "", styles))
    doc.build(story)

    pdf = buffer.getvalue()
    logger.info(f"Rendered learning plan PDF ({len(pdf)} bytes)")
    return pdf


def build_plan_filename(goal: Optional[str], on: Optional[date] = None) -> str:
    """``learning-plan-{goal-slug}-{YYYY-MM-DD}.pdf``"""
    slug = _SLUG.sub("-", (goal or "").lower()).strip("-")[:60].strip("-") or "plan"
    return f"learning-plan-{slug}-{(on or date.today()).isoformat()}.pdf"
