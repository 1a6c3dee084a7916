"""
derby_report.py

PDF rendering of ranked derby results with ReportLab.
"""

import logging
import pathlib
from dataclasses import dataclass

from reportlab.lib import colors
from reportlab.lib.colors import Color, black, blue, gray, green, orange, pink, red, violet
from reportlab.lib.enums import TA_CENTER, TA_LEFT
from reportlab.lib.pagesizes import landscape, A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import cm
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer, PageBreak
from reportlab.graphics.shapes import Drawing, String
from reportlab.graphics.charts.linecharts import HorizontalLineChart

from derby_config import Config
from derby_sanity import ERROR, WARNING

logger = logging.getLogger(__name__)

AVG_METHOD_LABELS = {
    "drop_slowest": "Average of all heats except each racer's slowest",
    "all_heats": "Average of all heats",
}


@dataclass
class DesignAward:
    """A car design award, judged outside the timing data."""
    category: str
    winner: str = ""
    car_name: str = ""

    @classmethod
    def from_dict(cls, data) -> "DesignAward":
        if not isinstance(data, dict) or not data.get("category"):
            raise ValueError(f"Design award entry needs a 'category': {data!r}")
        return cls(
            category=str(data["category"]),
            winner=str(data.get("winner") or ""),
            car_name=str(data.get("car_name") or data.get("carName") or ""),
        )


def format_time(seconds, decimals=3):
    if not seconds or seconds <= 0:
        return "-"
    return f"{seconds:.{decimals}f}"


def format_delta(den_score, finals_score):
    """Signed change from den average to finals average; negative is faster."""
    if not den_score or not finals_score or den_score <= 0 or finals_score <= 0:
        return "-"
    return f"{finals_score - den_score:+.3f}"


def write_pdf_report(pdf_file, ranking, sanity, title="Pinewood Derby", year=None, meta=None,
                     design_awards=None):
    """Generate the results PDF: findings, den tables, grand finals, design awards.

    meta may carry "date", "location", "total_heats" and "total_races" for
    the cover header.
    """
    pdf_path = pathlib.Path(pdf_file)
    meta = meta or {}
    margin = 20

    def add_footer(canvas, doc):
        canvas.saveState()
        canvas.setFont('Helvetica', 8)
        y = 0.75 * cm
        x = doc.pagesize[0] - doc.rightMargin
        canvas.drawRightString(x, y, Config.REPORT_FOOTER)
        canvas.restoreState()

    doc = SimpleDocTemplate(
        str(pdf_path),
        pagesize=landscape(A4),
        leftMargin=margin, rightMargin=margin,
        topMargin=margin, bottomMargin=margin
    )

    styles = getSampleStyleSheet()
    elements = []

    print_pdf_cover_header(elements, ranking, title, year, meta, styles)
    print_pdf_findings(elements, sanity, styles)
    for class_ranking in ranking.den_classes:
        print_pdf_class_table(elements, class_ranking, ranking.options.scoring_key, styles)
    print_pdf_finals_table(elements, ranking, styles)
    print_pdf_den_vs_finals_chart(elements, ranking, styles)
    print_pdf_design_awards(elements, design_awards, styles)

    doc.build(elements, onFirstPage=add_footer, onLaterPages=add_footer)
    logger.info("PDF written to %s", pdf_path)
    return pdf_path


def print_pdf_cover_header(elements, ranking, title, year, meta, styles):
    heading = f"{title} {year}" if year else title
    elements.append(Paragraph(heading, styles["Heading1"]))
    elements.append(Spacer(1, 4))

    left_style = ParagraphStyle("Left", parent=styles["Normal"], alignment=TA_LEFT)
    when_where = " - ".join(v for v in (meta.get("date"), meta.get("location")) if v)
    if when_where:
        elements.append(Paragraph(when_where, styles["Heading3"]))

    counts = [f"{ranking.racer_count} Racers"]
    if meta.get("total_heats"):
        counts.append(f"{meta['total_heats']} heats")
    if meta.get("total_races"):
        counts.append(f"{meta['total_races']} lane results")
    elements.append(Paragraph(", ".join(counts), left_style))

    method = AVG_METHOD_LABELS.get(ranking.options.avg_method, ranking.options.avg_method)
    elements.append(Paragraph(f"Ranking by: {method}", left_style))
    if ranking.excluded_winners:
        elements.append(Paragraph(
            f"Top {len(ranking.excluded_winners)} {ranking.options.finals_class} finishers "
            "are not awarded den places.", left_style))
    elements.append(Spacer(1, 12))


def print_pdf_findings(elements, sanity, styles):
    """List sanity findings; errors first and in red."""
    if not sanity or not sanity.findings:
        return

    error_style = ParagraphStyle("Error", parent=styles["Normal"], textColor=colors.red, fontName="Helvetica-Bold")
    warning_style = ParagraphStyle("Warning", parent=styles["Normal"], textColor=colors.orange)
    note_style = ParagraphStyle("Note", parent=styles["Normal"], fontSize=8, textColor=colors.grey)

    elements.append(Paragraph("Data Check", styles["Heading2"]))
    if not sanity.is_valid:
        elements.append(Paragraph(
            "These results are NOT final: some racers appear in more than one den.", error_style))
    elements.append(Spacer(1, 4))

    for finding in sanity.errors + sanity.warnings + sanity.infos:
        if finding.severity == ERROR:
            style = error_style
        elif finding.severity == WARNING:
            style = warning_style
        else:
            style = note_style
        elements.append(Paragraph(f"{finding.severity.upper()}: {finding.message}", style))
    elements.append(Spacer(1, 12))


def _table_style():
    return TableStyle([
        ('BACKGROUND', (0,0), (-1,0), colors.grey),
        ('TEXTCOLOR', (0,0), (-1,0), colors.whitesmoke),
        ('FONTNAME', (0,0), (-1,0), 'Helvetica-Bold'),
        ('FONTSIZE', (0,0), (-1,0), 9),
        ('ALIGN', (0,0), (-1,-1), 'CENTER'),
        ('ALIGN', (1,1), (1,-1), 'LEFT'),
        ('GRID', (0,0), (-1,-1), 0.25, colors.black),
        ('FONTSIZE', (0,1), (-1,-1), 8),
    ])


def _place_text(row):
    if row.place is None:
        return ""
    if row.trophy_place:
        return f"{row.place}{Config.TROPHIES[row.place - 1]}"
    return str(row.place)


def print_pdf_class_table(elements, class_ranking, scoring_key, styles):
    if not class_ranking.rows:
        return
    center_bold = ParagraphStyle("CenterBold", parent=styles["Normal"], alignment=TA_CENTER, fontName="Helvetica-Bold")

    elements.append(Paragraph(class_ranking.class_name, styles["Heading2"]))
    header_row = [
        Paragraph("Place", center_bold),
        Paragraph("Racer (Car Number)", center_bold),
        Paragraph("", center_bold),
        Paragraph("Heats", center_bold),
        Paragraph("Avg", center_bold),
        Paragraph("Best", center_bold),
        Paragraph("Worst", center_bold),
    ]
    table_data = [header_row]
    for row in class_ranking.rows:
        s = row.stats
        table_data.append([
            _place_text(row),
            s.get_display_name(),
            row.label or ("finals winner" if row.excluded else ""),
            s.race_count,
            format_time(s.score(scoring_key), 4),
            format_time(s.best_time),
            format_time(s.worst_time),
        ])

    available_width = landscape(A4)[0] - 2 * 20 - 60
    col_ratios = [0.08, 0.40, 0.12, 0.08, 0.12, 0.10, 0.10]
    tbl = Table(table_data, colWidths=[r * available_width for r in col_ratios], repeatRows=1)
    tbl.setStyle(_table_style())
    elements.append(tbl)
    elements.append(Spacer(1, 12))


def print_pdf_finals_table(elements, ranking, styles):
    rows = ranking.finals_results
    if not rows:
        return
    center_bold = ParagraphStyle("CenterBold", parent=styles["Normal"], alignment=TA_CENTER, fontName="Helvetica-Bold")
    scoring_key = ranking.options.scoring_key

    elements.append(PageBreak())
    elements.append(Paragraph(ranking.options.finals_class, styles["Heading2"]))
    table_data = [[
        Paragraph("Place", center_bold),
        Paragraph("Racer (Car Number)", center_bold),
        Paragraph("Den", center_bold),
        Paragraph("Heats", center_bold),
        Paragraph("Avg", center_bold),
        Paragraph("Den Avg", center_bold),
        Paragraph("Change", center_bold),
        Paragraph("Best", center_bold),
        Paragraph("Worst", center_bold),
    ]]
    for row in rows:
        s = row.stats
        den_score = row.origin_stats.score(scoring_key) if row.origin_stats else None
        table_data.append([
            _place_text(row),
            s.get_display_name(),
            row.origin_class or "",
            s.race_count,
            format_time(s.score(scoring_key), 4),
            format_time(den_score, 4),
            format_delta(den_score, s.score(scoring_key)),
            format_time(s.best_time),
            format_time(s.worst_time),
        ])

    available_width = landscape(A4)[0] - 2 * 20 - 60
    col_ratios = [0.07, 0.30, 0.12, 0.07, 0.09, 0.09, 0.08, 0.09, 0.09]
    tbl = Table(table_data, colWidths=[r * available_width for r in col_ratios], repeatRows=1)
    tbl.setStyle(_table_style())
    elements.append(tbl)
    elements.append(Spacer(1, 12))


def print_pdf_den_vs_finals_chart(elements, ranking, styles):
    """Slope chart of each finals entrant's den average against their finals average."""
    pairs = ranking.den_vs_finals()
    if not pairs:
        return

    elements.append(Paragraph("Den vs. Finals Average", styles["Heading2"]))
    elements.append(Spacer(1, 8))

    base_colors = [black, red, green, blue, orange, violet, pink, gray,
                   Color(0.5, 0.2, 0.8), Color(0.8, 0.5, 0.2)]

    margin = 20
    chart_width = landscape(A4)[0] - 2 * margin
    chart_height = 360
    drawing = Drawing(chart_width, chart_height)

    hc = HorizontalLineChart()
    hc.x = 100
    hc.y = 30
    hc.width = chart_width - 360
    hc.height = chart_height - 60
    hc.data = [[den, finals] for _, den, finals in pairs]

    values = [v for _, den, finals in pairs for v in (den, finals)]
    pad = max((max(values) - min(values)) * 0.05, 0.01)
    value_min = min(values) - pad
    value_max = max(values) + pad

    hc.categoryAxis.categoryNames = ["Den", ranking.options.finals_class]
    hc.categoryAxis.labels.fontName = 'Helvetica-Bold'
    hc.categoryAxis.labels.fontSize = 8
    hc.categoryAxis.labels.dy = -6
    hc.valueAxis.valueMin = value_min
    hc.valueAxis.valueMax = value_max
    # Faster times on top
    hc.valueAxis.reverseDirection = True
    hc.valueAxis.visibleGrid = True
    hc.valueAxis.labels.fontName = 'Helvetica'
    hc.valueAxis.labels.fontSize = 7
    hc.valueAxis.labelTextFormat = '%.3f'

    for i in range(len(hc.data)):
        hc.lines[i].strokeColor = base_colors[i % len(base_colors)]
        hc.lines[i].strokeWidth = 1.6

    drawing.add(hc)

    def y_for_value(v):
        return hc.y + hc.height - (v - value_min) / (value_max - value_min) * hc.height

    label_x = hc.x + hc.width + 8
    for i, (racer_key, _, finals) in enumerate(pairs):
        drawing.add(String(
            label_x, y_for_value(finals) - 2,
            f"{racer_key.first_name} {racer_key.last_name} (#{racer_key.car_number})",
            fontName='Helvetica', fontSize=7, fillColor=base_colors[i % len(base_colors)],
        ))

    elements.append(drawing)
    elements.append(Spacer(1, 12))


def print_pdf_design_awards(elements, design_awards, styles):
    awards = [a for a in (design_awards or []) if a.winner]
    if not awards:
        return
    center_bold = ParagraphStyle("CenterBold", parent=styles["Normal"], alignment=TA_CENTER, fontName="Helvetica-Bold")

    elements.append(Paragraph("Car Design Winners", styles["Heading2"]))
    table_data = [[
        Paragraph("Category", center_bold),
        Paragraph("Racer (Car Number)", center_bold),
        Paragraph("Car Name", center_bold),
    ]]
    for award in awards:
        table_data.append([award.category, award.winner, award.car_name])

    available_width = landscape(A4)[0] - 2 * 20 - 60
    col_ratios = [0.30, 0.40, 0.30]
    tbl = Table(table_data, colWidths=[r * available_width for r in col_ratios], repeatRows=1)
    tbl.setStyle(_table_style())
    elements.append(tbl)
