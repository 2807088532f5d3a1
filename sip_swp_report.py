from datetime import date
from io import BytesIO
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from sip_swp_helpers import format_currency_for_pdf, format_percent
from sip_swp_simulation import SimulationSummary, YearRecord
from sip_swp_solver import CalculationMode, parse_mode


# Display label -> YearRecord attribute
YEARLY_COLUMNS = {
    "Age": "age",
    "Start Corpus": "year_start_corpus",
    "Monthly SIP": "sip_amount",
    "Yearly SIP": "total_sip_for_year",
    "Monthly Income": "monthly_income",
    "Yearly Withdrawal": "total_withdrawal_for_year",
    "End Corpus": "year_end_corpus",
    "Net Monthly Cash Flow": "net_cash_flow",
    "Retired": "is_retired",
    "SIP Active": "is_sip_active",
    "SIP Frozen": "is_sip_frozen",
}
MONEY_COLUMNS = [
    "Start Corpus", "Monthly SIP", "Yearly SIP", "Monthly Income",
    "Yearly Withdrawal", "End Corpus", "Net Monthly Cash Flow",
]
PDF_TABLE_COLUMNS = [
    "Age", "Start Corpus", "Monthly SIP", "Monthly Income", "Yearly Withdrawal", "End Corpus",
]

MODE_TITLES = {
    CalculationMode.SIP: "Calculate Required Monthly SIP",
    CalculationMode.INCOME: "Calculate Maximum Monthly Income",
    CalculationMode.END_CORPUS: "Calculate Final Corpus",
}

styles = getSampleStyleSheet()


def yearly_data_frame(records: Sequence[YearRecord]) -> pd.DataFrame:
    rows = [{label: getattr(r, attr) for label, attr in YEARLY_COLUMNS.items()} for r in records]
    return pd.DataFrame(rows, columns=list(YEARLY_COLUMNS))


def make_csv(records: Sequence[YearRecord]) -> bytes:
    return yearly_data_frame(records).to_csv(index=False).encode("utf-8")


def input_rows(settings: Dict[str, Any]) -> List[Tuple[str, str]]:
    mode = parse_mode(settings["calculation_mode"])
    rows = [
        ("Current Age", f"{settings['current_age']} years"),
        ("Planned Retirement Age", f"{settings['retirement_age']} years"),
        ("Life Expectancy (SWP End Age)", f"{settings['end_age']} years"),
        ("SIP Payment End Age", f"{settings['sip_payment_end_age']} years"),
        ("SIP Increase Freeze Age", f"{settings['sip_freeze_age']} years"),
        ("Expected Annual Return", format_percent(settings["expected_return"])),
        ("Annual Income Increase", format_percent(settings["yearly_income_increase"])),
        ("Current Investment Value", format_currency_for_pdf(settings["added_corpus_now"])),
        ("Lumpsum at Retirement", format_currency_for_pdf(settings["added_corpus_retirement"])),
        ("Annual SIP Increase", format_percent(settings["sip_increase_rate"])),
        ("Calculation Mode", MODE_TITLES[mode]),
    ]

    sip = ("Monthly SIP Amount", format_currency_for_pdf(settings["starting_sip_amount"]))
    income = ("Desired Monthly Income", format_currency_for_pdf(settings["starting_monthly_income"]))
    target = ("Target Corpus at End Age", format_currency_for_pdf(settings["target_end_corpus"]))
    if mode is CalculationMode.SIP:
        rows += [income, target]
    elif mode is CalculationMode.INCOME:
        rows += [sip, target]
    else:
        rows += [sip, income]
    return rows


def summary_rows(settings: Dict[str, Any], summary: SimulationSummary) -> List[Tuple[str, str]]:
    """`settings` must already carry the solved SIP / income for the search modes."""
    mode = parse_mode(settings["calculation_mode"])
    rows = [
        ("Total SIP Invested", format_currency_for_pdf(summary.total_sip_invested)),
        ("Total Amount Withdrawn", format_currency_for_pdf(summary.total_withdrawn)),
        ("Final Corpus Remaining", format_currency_for_pdf(summary.final_corpus)),
    ]
    if mode is CalculationMode.SIP:
        rows.insert(0, ("Required Monthly SIP", format_currency_for_pdf(settings["starting_sip_amount"])))
    elif mode is CalculationMode.INCOME:
        rows.insert(0, ("Maximum Monthly Income", format_currency_for_pdf(settings["starting_monthly_income"])))
    return rows


def report_filename(mode, today: Optional[date] = None) -> str:
    mode = parse_mode(mode)
    today = today or date.today()
    return f"SWP_Calculator_{mode.value.replace('calculate', '')}_{today.isoformat()}.pdf"


# ----------------------
# PDF building
# ----------------------
def _label_value_table(rows: List[Tuple[str, str]], label_width: float) -> Table:
    tbl = Table([[f"{label}:", value] for label, value in rows], colWidths=[label_width, None], hAlign="LEFT")
    tbl.setStyle(TableStyle([
        ("FONTNAME", (0, 0), (0, -1), "Helvetica"),
        ("FONTNAME", (1, 0), (1, -1), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 10),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 3),
    ]))
    return tbl


def _yearly_table(records: Sequence[YearRecord]) -> Table:
    df = yearly_data_frame(records)[PDF_TABLE_COLUMNS].copy()
    for c in PDF_TABLE_COLUMNS:
        if c in MONEY_COLUMNS:
            df[c] = df[c].map(format_currency_for_pdf)
    data = [PDF_TABLE_COLUMNS] + df.astype(str).values.tolist()

    # repeatRows keeps the header on every page the table spills onto
    tbl = Table(data, repeatRows=1)
    tbl.setStyle(TableStyle([
        ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
        ("BACKGROUND", (0, 0), (-1, 0), colors.whitesmoke),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("ALIGN", (0, 0), (-1, 0), "CENTER"),
        ("ALIGN", (1, 1), (-1, -1), "RIGHT"),
        ("FONTSIZE", (0, 0), (-1, -1), 8),
        ("BOTTOMPADDING", (0, 0), (-1, 0), 6),
    ]))
    return tbl


class _FooterCanvas(canvas.Canvas):
    """Defers page output so every footer can show the total page count."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._page_states: List[Dict] = []

    def showPage(self):
        self._page_states.append(dict(self.__dict__))
        self._startPage()

    def save(self):
        total = len(self._page_states)
        for state in self._page_states:
            self.__dict__.update(state)
            self._draw_footer(total)
            super().showPage()
        super().save()

    def _draw_footer(self, total: int) -> None:
        width, _height = self._pagesize
        self.setFont("Helvetica", 8)
        self.drawCentredString(width / 2, 10 * mm, f"Page {self._pageNumber} of {total}")
        self.drawRightString(width - 20 * mm, 10 * mm, "Generated by SWP Calculator")


def make_pdf_report(
    settings: Dict[str, Any],
    summary: Optional[SimulationSummary],
    records: Sequence[YearRecord],
    generated_on: Optional[date] = None,
) -> bytes:
    """A4 report: inputs, summary and the year-by-year table. Returns the PDF bytes."""
    generated_on = generated_on or date.today()
    buf = BytesIO()
    doc = SimpleDocTemplate(buf, pagesize=A4, leftMargin=20 * mm, rightMargin=20 * mm,
                            topMargin=20 * mm, bottomMargin=20 * mm)

    story = [
        Paragraph("SWP Calculator Report", styles["Title"]),
        Paragraph(f"Generated on: {generated_on.strftime('%d/%m/%Y')}", styles["Normal"]),
        Spacer(1, 18),
        Paragraph("Input Parameters", styles["Heading2"]),
        _label_value_table(input_rows(settings), label_width=60 * mm),
        Spacer(1, 12),
    ]

    if summary is not None:
        story += [
            Paragraph("Summary Results", styles["Heading2"]),
            _label_value_table(summary_rows(settings, summary), label_width=60 * mm),
            Spacer(1, 12),
        ]

    if records:
        story += [
            Paragraph("Year-by-Year Projection Table", styles["Heading2"]),
            Spacer(1, 6),
            _yearly_table(records),
        ]

    doc.build(story, canvasmaker=_FooterCanvas)
    return buf.getvalue()
