"""Plain-text split summary, suitable for pasting into a chat."""
from services.allocation import SplitSummary
from services.currency import format_currency


def render_summary_text(summary: SplitSummary, tip_percentage: float, currency_symbol: str) -> str:
    lines = [
        "Dine Split Summary",
        "=" * 20,
        "",
        f"Bill Total: {format_currency(summary.bill_total, currency_symbol)}",
        f"Tip: {tip_percentage:g}%",
        "",
    ]
    for ps in summary.person_summaries:
        lines.append(ps.person.name)
        lines.append("-" * 15)
        for line in ps.items:
            qty = f"{line.quantity}x " if line.quantity > 1 else ""
            lines.append(f"  {qty}{line.description}: {format_currency(line.amount, currency_symbol)}")
        lines.append(f"  Subtotal: {format_currency(ps.subtotal, currency_symbol)}")
        lines.append(f"  Tip: {format_currency(ps.tip, currency_symbol)}")
        lines.append(f"  Total: {format_currency(ps.total, currency_symbol)}")
        lines.append("")
    return "\n".join(lines) + "\n"
