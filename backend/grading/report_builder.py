"""
report_builder.py - Ranking report export.

Generates:
- Ranking Report PDF   (subject header, summary metrics, colour-coded ranking table)
- Ranking Report Excel (ranking sheet with performance colouring, summary sheet)

Both take the rows produced by ranking.build_ranking_report and the
summary produced by stats.compute_score_summary. PDFs are A4, print-ready
with school name / date footer.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils.dataframe import dataframe_to_rows
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import cm, mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from grading.scoring import to_number


# ── Colour palette ──────────────────────────────────────────────────

BRAND_DARK = colors.HexColor("#1a1a2e")
BRAND_ACCENT = colors.HexColor("#0f3460")
LIGHT_GREY = colors.HexColor("#f5f5f5")
WHITE = colors.white

# performance category -> row background (PDF) / fill colour (Excel)
PERFORMANCE_COLOURS = {
    "excellent": "d5f5e3",
    "good": "eaf2f8",
    "average": "fef9e7",
    "poor": "fadbd8",
}

RANKING_COLUMNS = [
    ("rank", "Rank"),
    ("name", "Student"),
    ("exam_score", "Exam"),
    ("assessment_score", "Assessment"),
    ("final_score", "Total"),
    ("performance", "Performance"),
]


# ── Helpers ─────────────────────────────────────────────────────────

def _fmt(val, suffix: str = "") -> str:
    v = to_number(val)
    return "N/A" if v is None else f"{v:.1f}{suffix}"


def _footer(canvas, doc, school_name: str):
    """Draw school name and date in the page footer."""
    canvas.saveState()
    canvas.setFont("Helvetica", 8)
    canvas.setFillColor(colors.grey)
    footer_text = f"{school_name} | Generated {datetime.now().strftime('%d %B %Y, %H:%M')}"
    canvas.drawString(2 * cm, 1.2 * cm, footer_text)
    canvas.drawRightString(A4[0] - 2 * cm, 1.2 * cm, f"Page {doc.page}")
    canvas.restoreState()


def _styles():
    """Return custom paragraph styles."""
    ss = getSampleStyleSheet()
    return {
        "title": ParagraphStyle(
            "CustomTitle", parent=ss["Title"],
            fontSize=22, leading=28, textColor=BRAND_DARK,
            spaceAfter=4 * mm,
        ),
        "subtitle": ParagraphStyle(
            "CustomSubtitle", parent=ss["Normal"],
            fontSize=12, leading=16, textColor=BRAND_ACCENT,
            spaceAfter=3 * mm, alignment=TA_CENTER,
        ),
        "heading": ParagraphStyle(
            "CustomHeading", parent=ss["Heading2"],
            fontSize=13, leading=17, textColor=BRAND_DARK,
            spaceBefore=6 * mm, spaceAfter=3 * mm,
        ),
        "body": ParagraphStyle(
            "CustomBody", parent=ss["Normal"],
            fontSize=10, leading=14, textColor=colors.black,
            spaceAfter=3 * mm,
        ),
    }


def _make_table(data: List[List], col_widths=None, header_color=BRAND_DARK):
    """Create a styled table."""
    style_cmds = [
        ("BACKGROUND", (0, 0), (-1, 0), header_color),
        ("TEXTCOLOR", (0, 0), (-1, 0), WHITE),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, 0), 9),
        ("FONTSIZE", (0, 1), (-1, -1), 8),
        ("ALIGN", (0, 0), (-1, -1), "CENTER"),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#cccccc")),
        ("ROWBACKGROUNDS", (0, 1), (-1, -1), [WHITE, LIGHT_GREY]),
        ("TOPPADDING", (0, 0), (-1, -1), 4),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
    ]
    t = Table(data, colWidths=col_widths, repeatRows=1)
    t.setStyle(TableStyle(style_cmds))
    return t


def _ranking_table(rows: List[Dict[str, Any]]):
    """Ranking table with each row coloured by its performance category."""
    data = [[header for _, header in RANKING_COLUMNS]]
    for r in rows:
        data.append([
            str(r.get("rank", "")),
            str(r.get("name", r.get("student_id", "?"))),
            _fmt(r.get("exam_score")),
            _fmt(r.get("assessment_score")),
            _fmt(r.get("final_score")),
            str(r.get("performance", "")).capitalize(),
        ])

    t = _make_table(data, col_widths=[1.5 * cm, 5.5 * cm, 2.2 * cm, 2.6 * cm, 2.2 * cm, 3 * cm])
    row_styles = []
    for idx, r in enumerate(rows, 1):
        colour = PERFORMANCE_COLOURS.get(r.get("performance"))
        if colour:
            row_styles.append(("BACKGROUND", (0, idx), (-1, idx), colors.HexColor(f"#{colour}")))
    row_styles.append(("ALIGN", (1, 1), (1, -1), "LEFT"))
    t.setStyle(TableStyle(row_styles))
    return t


# ═══════════════════════════════════════════════════════════════════
# 1. RANKING REPORT PDF
# ═══════════════════════════════════════════════════════════════════

def generate_ranking_report_pdf(
    output_path: str,
    school_name: str,
    subject_name: str,
    rows: List[Dict[str, Any]],
    summary: Dict[str, Any],
    teacher_name: Optional[str] = None,
    period: Optional[str] = None,
):
    """Ranking report for one subject offering."""
    st = _styles()
    story = []

    story.append(Paragraph(school_name, st["title"]))
    story.append(Paragraph(f"Ranking Report: {subject_name}", st["subtitle"]))
    details = [d for d in (period, f"Teacher: {teacher_name}" if teacher_name else None) if d]
    if details:
        story.append(Paragraph(" | ".join(details), st["subtitle"]))
    story.append(Spacer(1, 4 * mm))

    story.append(Paragraph("Summary", st["heading"]))
    distribution = summary.get("distribution", {})
    summary_data = [
        ["Metric", "Value"],
        ["Students", str(len(rows))],
        ["Class Average", _fmt(summary.get("average"), "%")],
        ["Highest", _fmt(summary.get("max"), "%")],
        ["Lowest", _fmt(summary.get("min"), "%")],
        ["Pass Rate", _fmt(summary.get("pass_rate"), "%")],
        ["Excellence Rate", _fmt(summary.get("excellence_rate"), "%")],
    ]
    for category, count in distribution.items():
        summary_data.append([category.capitalize(), str(count)])
    story.append(_make_table(summary_data, col_widths=[7.5 * cm, 6.5 * cm]))

    story.append(Paragraph("Ranking", st["heading"]))
    if rows:
        story.append(_ranking_table(rows))
    else:
        story.append(Paragraph("No students in this cohort.", st["body"]))

    doc = SimpleDocTemplate(
        output_path,
        pagesize=A4,
        leftMargin=2 * cm,
        rightMargin=2 * cm,
        topMargin=2 * cm,
        bottomMargin=2.5 * cm,
    )
    doc.build(
        story,
        onFirstPage=lambda c, d: _footer(c, d, school_name),
        onLaterPages=lambda c, d: _footer(c, d, school_name),
    )


# ═══════════════════════════════════════════════════════════════════
# 2. RANKING REPORT EXCEL
# ═══════════════════════════════════════════════════════════════════

def generate_ranking_excel(
    output_path: str,
    subject_name: str,
    rows: List[Dict[str, Any]],
    summary: Dict[str, Any],
):
    """Ranking sheet coloured by performance category plus a summary sheet."""
    df = pd.DataFrame(rows, columns=[key for key, _ in RANKING_COLUMNS])
    df["performance"] = df["performance"].fillna("").astype(str).str.capitalize()
    df = df.rename(columns=dict(RANKING_COLUMNS))

    header_font = Font(bold=True, color="FFFFFF", size=11)
    header_fill = PatternFill(start_color="1a1a2e", end_color="1a1a2e", fill_type="solid")
    fills = {
        category.capitalize(): PatternFill(start_color=colour, end_color=colour, fill_type="solid")
        for category, colour in PERFORMANCE_COLOURS.items()
    }
    thin_border = Border(
        left=Side(style="thin"), right=Side(style="thin"),
        top=Side(style="thin"), bottom=Side(style="thin"),
    )

    def _style_sheet(ws, perf_col_idx: Optional[int] = None):
        for cell in ws[1]:
            cell.font = header_font
            cell.fill = header_fill
            cell.alignment = Alignment(horizontal="center")
            cell.border = thin_border

        for row in ws.iter_rows(min_row=2, max_row=ws.max_row):
            for cell in row:
                cell.border = thin_border
                cell.alignment = Alignment(horizontal="center")
            if perf_col_idx:
                fill = fills.get(row[perf_col_idx - 1].value)
                if fill:
                    for cell in row:
                        cell.fill = fill

        ws.freeze_panes = "A2"
        for col_cells in ws.columns:
            max_len = max(len(str(cell.value or "")) for cell in col_cells)
            ws.column_dimensions[col_cells[0].column_letter].width = min(max_len + 4, 30)

    wb = Workbook()

    # ── Sheet 1: Ranking ────────────────────────────────────────────
    ws_rank = wb.active
    ws_rank.title = "Ranking"
    ws_rank.sheet_properties.tabColor = "1a1a2e"
    for row in dataframe_to_rows(df, index=False, header=True):
        ws_rank.append(row)
    _style_sheet(ws_rank, perf_col_idx=len(RANKING_COLUMNS))

    # ── Sheet 2: Summary ────────────────────────────────────────────
    ws_sum = wb.create_sheet(title="Summary")
    ws_sum.sheet_properties.tabColor = "0f3460"
    ws_sum.append(["Metric", "Value"])
    ws_sum.append(["Subject", subject_name])
    ws_sum.append(["Students", len(rows)])
    for key, label in [
        ("average", "Class Average"),
        ("max", "Highest"),
        ("min", "Lowest"),
        ("pass_rate", "Pass Rate (%)"),
        ("excellence_rate", "Excellence Rate (%)"),
    ]:
        ws_sum.append([label, summary.get(key)])
    for category, count in summary.get("distribution", {}).items():
        ws_sum.append([category.capitalize(), count])
    _style_sheet(ws_sum)

    wb.save(output_path)
