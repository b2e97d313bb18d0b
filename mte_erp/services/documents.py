"""
Document rendering for communication bundles.

Produces the spreadsheet (.xlsx via openpyxl) and the PDF summary (via
reportlab) that are attached to emails and linked from WhatsApp.
"""

from dataclasses import dataclass, field
from datetime import datetime
from io import BytesIO
from typing import Any
from xml.sax.saxutils import escape

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import cm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from mte_erp.core.errors import ValidationFailed
from mte_erp.core.logging import get_logger
from mte_erp.core.models import DocumentBundle, LineItem, Recipient, RenderedFile
from mte_erp.handlers.base import BaseRecipientHandler, DocumentColumn

log = get_logger(__name__)

XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
PDF_CONTENT_TYPE = "application/pdf"

HEADER_FONT = Font(name="Calibri", bold=True, size=11, color="FFFFFF")
HEADER_FILL = PatternFill(start_color="2F5496", end_color="2F5496", fill_type="solid")
HIGHLIGHT_FILL = PatternFill(start_color="C6EFCE", end_color="C6EFCE", fill_type="solid")
HEADER_ALIGN = Alignment(wrap_text=True, vertical="center", horizontal="center")
WRAP = Alignment(wrap_text=True, vertical="top")


@dataclass
class DocumentData:
    """Everything a template needs to render one document."""

    title: str
    recipient_name: str
    columns: list[DocumentColumn]
    items: list[LineItem]
    created_at: datetime = field(default_factory=datetime.now)
    remark: str | None = None

    def rows(self) -> list[list[Any]]:
        return [[col.value(sr, item) for col in self.columns] for sr, item in enumerate(self.items, start=1)]


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return escape(str(value))


class DocumentRenderer:
    """Renders DocumentData by template key ('spreadsheet' or 'pdf')."""

    def render(self, template_key: str, data: DocumentData) -> bytes:
        """
        Render a document.

        Args:
            template_key: 'spreadsheet' or 'pdf'
            data: Title, columns and line items

        Returns:
            File content bytes.

        Raises:
            ValidationFailed: Unknown template key.
        """
        if template_key == "spreadsheet":
            return self.render_spreadsheet(data)
        if template_key == "pdf":
            return self.render_pdf(data)
        raise ValidationFailed(f"Unknown document template {template_key}", template=template_key)

    def render_spreadsheet(self, data: DocumentData) -> bytes:
        wb = Workbook()
        ws = wb.active
        ws.title = data.title[:31]

        for col, column in enumerate(data.columns, start=1):
            cell = ws.cell(row=1, column=col, value=column.header)
            cell.font = HEADER_FONT
            cell.fill = HIGHLIGHT_FILL if column.highlight else HEADER_FILL
            if column.highlight:
                cell.font = Font(name="Calibri", bold=True, size=11)
            cell.alignment = HEADER_ALIGN
            ws.column_dimensions[get_column_letter(col)].width = column.width

        for row_index, row in enumerate(data.rows(), start=2):
            for col, value in enumerate(row, start=1):
                cell = ws.cell(row=row_index, column=col, value=value)
                cell.alignment = WRAP
                if data.columns[col - 1].highlight:
                    cell.fill = HIGHLIGHT_FILL

        ws.freeze_panes = "A2"
        ws.row_dimensions[1].height = 36

        buffer = BytesIO()
        wb.save(buffer)
        return buffer.getvalue()

    def render_pdf(self, data: DocumentData) -> bytes:
        buffer = BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=landscape(A4),
            topMargin=1 * cm,
            bottomMargin=1 * cm,
            leftMargin=1 * cm,
            rightMargin=1 * cm,
        )
        styles = getSampleStyleSheet()
        cell_style = styles["BodyText"].clone("cell", fontSize=7, leading=9)
        head_style = styles["BodyText"].clone("head", fontSize=7, leading=9, textColor=colors.white)

        elements = [
            Paragraph(escape(data.title.upper()), styles["Title"]),
            Paragraph(f"<b>{escape(data.recipient_name)}</b>", styles["Normal"]),
            Paragraph(f"Date: {data.created_at:%d %b %Y}", styles["Normal"]),
            Spacer(1, 0.4 * cm),
        ]

        table_data = [[Paragraph(f"<b>{escape(col.header)}</b>", head_style) for col in data.columns]]
        for row in data.rows():
            table_data.append([Paragraph(_cell_text(value), cell_style) for value in row])

        total_width = sum(col.width for col in data.columns) or 1
        usable = landscape(A4)[0] - 2 * cm
        table = Table(
            table_data,
            colWidths=[usable * col.width / total_width for col in data.columns],
            repeatRows=1,
        )
        style = [
            ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#2F5496")),
            ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
            ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ]
        for col, column in enumerate(data.columns):
            if column.highlight:
                style.append(("BACKGROUND", (col, 1), (col, -1), colors.HexColor("#C6EFCE")))
        table.setStyle(TableStyle(style))
        elements.append(table)

        if data.remark:
            elements += [Spacer(1, 0.4 * cm), Paragraph(f"Remarks: {escape(data.remark)}", styles["Normal"])]

        doc.build(elements)
        return buffer.getvalue()

    def render_bundle(
        self,
        handler: BaseRecipientHandler,
        recipient: Recipient,
        items: list[LineItem],
        remark: str | None = None,
        at: datetime | None = None,
    ) -> DocumentBundle:
        """Spreadsheet + PDF for one communication (not yet uploaded)."""
        at = at or datetime.now()
        data = DocumentData(
            title=handler.document_title,
            recipient_name=recipient.name,
            columns=handler.columns(),
            items=items,
            created_at=at,
            remark=remark,
        )
        bundle = DocumentBundle(
            spreadsheet=RenderedFile(
                filename=handler.document_filename(recipient, "xlsx", at),
                content=self.render("spreadsheet", data),
                content_type=XLSX_CONTENT_TYPE,
            ),
            pdf=RenderedFile(
                filename=handler.document_filename(recipient, "pdf", at),
                content=self.render("pdf", data),
                content_type=PDF_CONTENT_TYPE,
            ),
        )
        log.info(
            "documents_rendered",
            kind=handler.kind.value,
            recipient_id=recipient.id,
            items=len(items),
        )
        return bundle
