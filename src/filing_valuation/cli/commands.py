"""CLI command definitions for statement reconstruction and valuation."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from filing_valuation.domain.models.financials import STATEMENT_TYPES, StatementRecord
from filing_valuation.domain.models.valuation import GrowthOverrides, HistoricalMultiples, ManualOverrides
from filing_valuation.infrastructure.data_providers.local_files import FactStoreError, quote_from_options
from filing_valuation.settings.config import Config
from filing_valuation.settings.loader import load_settings
from filing_valuation.utils.logging import configure_logging
from filing_valuation.workflows.graph import ValuationWorkflow
from filing_valuation.workflows.state import ValuationState

console = Console()
app = typer.Typer(help="Reconstruct financial statements from reported facts and estimate intrinsic value.")

STATEMENT_COLUMNS = {
    "income": ["revenue", "gross_profit", "operating_income", "net_income", "eps_diluted"],
    "balance": ["total_assets", "total_liabilities", "total_shareholder_equity", "cash_and_cash_equivalents", "long_term_debt"],
    "cash_flow": ["operating_cash_flow", "capital_expenditures", "free_cash_flow", "dividends_paid", "end_cash"],
}


@dataclass
class AppContext:
    """Holds reusable process-wide objects for CLI commands."""

    config: Config
    workflow: ValuationWorkflow


def _init_context(
    debug_override: Optional[bool] = None,
    facts_dir: Optional[Path] = None,
    quotes_file: Optional[Path] = None,
) -> AppContext:
    """Create a context with configuration, logging, and workflow wiring."""
    config = load_settings(debug_override, facts_dir=facts_dir, quotes_file=quotes_file)
    configure_logging(debug=config.debug, console=console)
    return AppContext(config=config, workflow=ValuationWorkflow(config=config))


@app.callback()
def main_callback(
    ctx: typer.Context,
    debug: Optional[bool] = typer.Option(
        None,
        "--debug/--no-debug",
        help="Temporarily toggle verbose logging without touching environment variables.",
    ),
    facts_dir: Optional[Path] = typer.Option(None, "--facts-dir", help="Directory holding <SYMBOL>.json facts files."),
    quotes_file: Optional[Path] = typer.Option(None, "--quotes-file", help="JSON file of quotes keyed by symbol."),
) -> None:
    """Attach the application context to Typer."""
    ctx.obj = _init_context(debug_override=debug, facts_dir=facts_dir, quotes_file=quotes_file)


@app.command()
def statements(
    ctx: typer.Context,
    symbol: str = typer.Argument(..., help="Ticker whose facts file lives in the facts directory, e.g. AAPL"),
    statement_type: str = typer.Option("income", "--type", help="income, balance or cash_flow"),
    quarterly: bool = typer.Option(False, "--quarterly", help="Show quarterly records instead of annual."),
    limit: int = typer.Option(8, "--limit", help="Maximum number of periods to display."),
) -> None:
    """Reconstruct statements for a symbol and print them as a table."""
    if ctx.obj is None:
        raise typer.Exit(code=1)
    context: AppContext = ctx.obj
    if statement_type not in STATEMENT_TYPES:
        console.print(f"[red]Unknown statement type {statement_type!r}; choose from {', '.join(STATEMENT_TYPES)}[/red]")
        raise typer.Exit(code=2)

    try:
        facts = context.workflow.context.fact_store.fetch(symbol)
    except FactStoreError as exc:
        console.print(f"[bold red]{exc}[/bold red]")
        raise typer.Exit(code=1)

    reconstructed = context.workflow.context.reconstructor.reconstruct(symbol.upper(), facts)
    statement_set = reconstructed.get(statement_type)
    records = (statement_set.quarterly if quarterly else statement_set.annual)[:limit]
    if statement_set.ttm is not None and not quarterly:
        records = [statement_set.ttm, *records]
    if not records:
        console.print(f"[yellow]No {statement_type} records found for {symbol}.[/yellow]")
        raise typer.Exit(code=1)

    _print_statement_table(f"{symbol.upper()} {statement_type}", records, STATEMENT_COLUMNS[statement_type])
    for issue in statement_set.quality_issues:
        console.print(f"[yellow]- {issue}[/yellow]")


@app.command()
def value(
    ctx: typer.Context,
    symbol: str = typer.Argument(..., help="Ticker to value, e.g. AAPL"),
    price: Optional[float] = typer.Option(None, "--price", help="Current share price; otherwise read from the quotes file."),
    shares: Optional[float] = typer.Option(None, "--shares", help="Shares outstanding."),
    pe: Optional[float] = typer.Option(None, "--pe", help="Current P/E ratio."),
    peg: Optional[float] = typer.Option(None, "--peg", help="Current PEG ratio."),
    # Manual inputs for gaps in the filings
    operating_cashflow: Optional[float] = typer.Option(None, "--operating-cashflow", help="Manual operating cash flow."),
    shareholder_equity: Optional[float] = typer.Option(None, "--shareholder-equity", help="Manual book value."),
    earnings_growth: Optional[float] = typer.Option(None, "--earnings-growth", help="Manual earnings growth (0.12 = 12%)."),
    manual_peg: Optional[float] = typer.Option(None, "--manual-peg", help="Manual PEG ratio used by the PEG method."),
    # Growth path
    growth_1_5: Optional[float] = typer.Option(None, "--growth-1-5", help="Growth rate for years 1-5."),
    growth_6_10: Optional[float] = typer.Option(None, "--growth-6-10", help="Growth rate for years 6-10."),
    growth_11_20: Optional[float] = typer.Option(None, "--growth-11-20", help="Growth rate for years 11-20."),
    discount_rate: Optional[float] = typer.Option(None, "--discount-rate", help="Discount rate (e.g. 0.09)."),
    beta: Optional[float] = typer.Option(None, "--beta", help="Beta; with --debt-to-equity derives the discount rate (WACC)."),
    debt_to_equity: Optional[float] = typer.Option(None, "--debt-to-equity", help="Debt/equity used for WACC."),
    tax_rate: float = typer.Option(0.21, "--tax-rate", help="Tax rate used for WACC."),
    sector: Optional[str] = typer.Option(None, "--sector", help="Sector for a P/E comparison with the sector median, e.g. Technology."),
    # Historical multiples
    avg_ps: Optional[float] = typer.Option(None, "--avg-ps", help="Historical average P/S."),
    avg_pe: Optional[float] = typer.Option(None, "--avg-pe", help="Historical average P/E."),
    avg_pb: Optional[float] = typer.Option(None, "--avg-pb", help="Historical average P/B."),
    save: bool = typer.Option(False, "--save", help="Persist the workflow state to JSON in the output directory."),
) -> None:
    """Run the workflow for a symbol and present the valuation."""
    if ctx.obj is None:
        raise typer.Exit(code=1)
    context: AppContext = ctx.obj
    console.rule(f"Valuing {symbol.upper()}")

    quote = quote_from_options(symbol, price=price, shares_outstanding=shares, pe_ratio=pe, peg_ratio=peg)
    if discount_rate is None and beta is not None and debt_to_equity is not None:
        discount_rate = context.workflow.context.valuation_engine.calculate_wacc(beta, debt_to_equity, tax_rate)
        console.print(f"Discount rate from WACC: {discount_rate:.2%}")

    with console.status("[bold cyan]Running workflow..."):
        result: ValuationState = context.workflow.run(
            symbol,
            quote,
            manual_overrides=ManualOverrides(
                operating_cashflow=operating_cashflow,
                shareholder_equity=shareholder_equity,
                peg_ratio=manual_peg,
                earnings_growth=earnings_growth,
            ),
            growth_overrides=GrowthOverrides(
                growth_1_to_5=growth_1_5,
                growth_6_to_10=growth_6_10,
                growth_11_to_20=growth_11_20,
                discount_rate=discount_rate,
            ),
            historical=HistoricalMultiples(price_to_sales=avg_ps, price_to_earnings=avg_pe, price_to_book=avg_pb),
        )

    if result.get("errors"):
        console.print("[bold red]Workflow completed with errors:[/bold red]")
        for issue in result["errors"]:
            console.print(f"- {issue}")

    _print_valuation(result)

    if result.get("valuation") is not None and sector:
        relative = context.workflow.context.valuation_engine.sector_relative_value(
            _current_pe(result), sector
        )
        if relative is None:
            console.print("[yellow]Sector comparison needs a positive P/E.[/yellow]")
        else:
            console.print(
                f"P/E vs {relative.sector} median {relative.sector_median_pe:.1f}: "
                f"{relative.relative_value:.0f} (100 = in line with sector)"
            )

    if save:
        context.config.ensure_directories()
        target = context.config.output_dir / f"{symbol.upper()}_state.json"
        context.workflow.persist_state(result, target)
        console.print(f"State saved to {target}")

    if result.get("valuation") is None:
        raise typer.Exit(code=1)


@app.command()
def batch(
    ctx: typer.Context,
    symbols: List[str] = typer.Argument(..., help="One or more tickers, e.g. AAPL MSFT"),
) -> None:
    """Value several symbols using quotes from the quotes file."""
    if ctx.obj is None:
        raise typer.Exit(code=1)
    context: AppContext = ctx.obj
    table = Table(title="Batch Valuation")
    for column in ("Symbol", "Price", "Fair Value", "Upside", "Call", "Errors"):
        table.add_column(column)
    for symbol in symbols:
        result = context.workflow.run(symbol)
        valuation = result.get("valuation")
        if valuation is None:
            table.add_row(symbol.upper(), "-", "-", "-", "-", str(len(result.get("errors", []))))
            continue
        table.add_row(
            symbol.upper(),
            f"{valuation.current_price:,.2f}",
            f"{valuation.average_intrinsic_value:,.2f}",
            f"{valuation.upside_percent:+.1f}%",
            valuation.recommendation,
            str(len(result.get("errors", []))),
        )
    console.print(table)


@app.command()
def plan(ctx: typer.Context) -> None:
    """Display the workflow stages for quick operator reference."""
    if ctx.obj is None:
        raise typer.Exit(code=1)

    context: AppContext = ctx.obj
    table = Table(title="Workflow Stages")
    table.add_column("Step", style="cyan")
    table.add_column("Description")

    for idx, step in enumerate(context.workflow.describe_stages(), start=1):
        table.add_row(str(idx), step)

    console.print(table)


def _current_pe(state: ValuationState) -> Optional[float]:
    quote = state.get("quote")
    if quote is not None and quote.pe_ratio:
        return quote.pe_ratio
    summary = state.get("summary")
    return summary.pe_ratio if summary is not None else None


def _fmt(value: Optional[float]) -> str:
    if value is None:
        return "-"
    if abs(value) >= 1_000_000:
        return f"{value / 1_000_000:,.1f}M"
    return f"{value:,.2f}"


def _print_statement_table(title: str, records: List[StatementRecord], columns: List[str]) -> None:
    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("Period")
    table.add_column("End")
    for column in columns:
        table.add_column(column, justify="right")
    table.add_column("Flags")
    for record in records:
        label = "TTM" if record.derived and record.fiscal_quarter is None else record.label
        if record.derived and record.fiscal_quarter == 4:
            label += "*"
        table.add_row(
            label,
            record.date.isoformat(),
            *(_fmt(record.values.get(column)) for column in columns),
            ", ".join(record.quality_flags),
        )
    console.print(table)


def _print_valuation(state: ValuationState) -> None:
    """Pretty-print methods, aggregate and hints for operators."""
    valuation = state.get("valuation")
    if valuation is None:
        return

    table = Table(title=f"{state.get('symbol', '?')} valuation", show_header=True, header_style="bold magenta")
    table.add_column("Method")
    table.add_column("Fair Value", justify="right")
    table.add_column("Confidence")
    table.add_column("Missing")
    for result in valuation.valuations:
        table.add_row(result.method, f"{result.value:,.2f}", result.confidence, result.missing_data or "")
    console.print(table)

    summary = Table(show_header=True, header_style="bold magenta")
    summary.add_column("Key")
    summary.add_column("Value")
    summary.add_row("Current Price", f"{valuation.current_price:,.2f}")
    summary.add_row("Intrinsic Value", f"{valuation.average_intrinsic_value:,.2f}")
    summary.add_row("Upside", f"{valuation.upside_percent:+.1f}%")
    summary.add_row("Recommendation", valuation.recommendation)
    category = state.get("category")
    if category is not None:
        summary.add_row("Category", f"{category.level} ({category.confidence} confidence)")
    summary.add_row("Data Confidence", state.get("data_confidence") or "N/A")
    summary.add_row("Errors", str(len(state.get("errors", []))))
    console.print(summary)

    for name, field in (state.get("missing_fields") or {}).items():
        console.print(f"[yellow]Provide --{name.replace('_', '-')}: {field.description}[/yellow]")
    for warning in valuation.warnings:
        console.print(f"[yellow]{warning}[/yellow]")
