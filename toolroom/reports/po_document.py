import io
import logging
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from toolroom.models.purchase_order import PurchaseOrder

logger = logging.getLogger(__name__)

def money(amount: float) -> str:
    return f"${amount:,.2f}"

def render_po_pdf(po: PurchaseOrder) -> bytes:
    """Printable purchase order: header, bundled lines, totals."""
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=letter, title=f"PO {po.po_number}")
    styles = getSampleStyleSheet()
    story = []

    story.append(Paragraph(f"Purchase Order {escape(po.po_number)}", styles['Title']))
    story.append(Paragraph(f"Vendor: {escape(po.vendor or 'N/A')}", styles['Normal']))
    story.append(Paragraph(f"Project / Job: {escape(po.project_job)}", styles['Normal']))
    story.append(Paragraph(f"Shipping: {po.shipping_type}", styles['Normal']))
    story.append(Paragraph(f"Status: {po.status}", styles['Normal']))
    if po.notes:
        story.append(Paragraph(f"Notes: {escape(po.notes)}", styles['Normal']))
    story.append(Spacer(1, 12))

    data = [["Manufacturer", "Part #", "Description", "Qty", "Unit", "Subtotal", "Req"]]
    for item in po.items:
        data.append([
            item.manufacturer,
            item.part_number,
            item.description[:60],
            f"{item.qty:g}",
            money(item.unit_cost),
            money(item.subtotal),
            ", ".join(rid[-6:] for rid in item.source_requisition_ids),
        ])
    data.append(["", "", "", "", "", "Subtotal", money(po.subtotal)])
    data.append(["", "", "", "", "", "Shipping", money(po.shipping_cost)])
    data.append(["", "", "", "", "", "Total", money(po.total)])

    t = Table(data, colWidths=[75, 70, 170, 35, 55, 65, 60])
    t.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.grey),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
        ('ALIGN', (0, 0), (-1, -1), 'LEFT'),
        ('ALIGN', (3, 1), (5, -1), 'RIGHT'),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('FONTNAME', (5, -3), (6, -1), 'Helvetica-Bold'),
        ('BOTTOMPADDING', (0, 0), (-1, 0), 12),
        ('GRID', (0, 0), (-1, -4), 1, colors.black),
        ('FONTSIZE', (0, 0), (-1, -1), 8),
    ]))

    story.append(t)
    doc.build(story)
    logger.info(f"Rendered PO {po.po_number} ({len(po.items)} lines)")
    return buffer.getvalue()
