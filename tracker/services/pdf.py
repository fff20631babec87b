from pathlib import Path
from datetime import datetime
from typing import List, Optional

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from ..schema import ChangeLogEntry


def _val(x: Optional[str]) -> str:
    return "" if x is None else str(x)


def generate_change_log_pdf(
    output_path: Path,
    entries: List[ChangeLogEntry],
    generated_at: Optional[datetime] = None,
    title: str = "System Change Log",
) -> Path:
    output_path.parent.mkdir(parents=True, exist_ok=True)

    doc = SimpleDocTemplate(str(output_path), pagesize=landscape(A4))
    styles = getSampleStyleSheet()
    cell = styles["BodyText"]
    story = []

    story.append(Paragraph(title, styles["Title"]))
    story.append(Spacer(1, 10))
    stamp = (generated_at or datetime.now()).strftime("%Y-%m-%d %H:%M:%S")
    story.append(Paragraph(f"Generated on {stamp} ({len(entries)} entries)", styles["Normal"]))
    story.append(Spacer(1, 16))

    # long details/comments need Paragraph cells to wrap
    table_data = [["Timestamp", "Type", "Subject", "Details", "Comment"]]
    for e in entries:
        table_data.append([
            e.timestamp.strftime("%Y-%m-%d %H:%M"),
            e.change_type.value,
            Paragraph(f"{_val(e.subject_name)} ({_val(e.subject_id)})", cell),
            Paragraph(_val(e.details), cell),
            Paragraph(_val(e.comment), cell),
        ])

    table = Table(table_data, colWidths=[95, 60, 140, 280, 180], repeatRows=1)
    table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor("#2a9d8f")),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
        ('GRID', (0, 0), (-1, -1), 0.4, colors.grey),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.whitesmoke, colors.lightgrey]),
    ]))

    story.append(table)
    doc.build(story)
    return output_path
