#!/usr/bin/env python3
"""
Console runner for tenant data mapping.

Runs the pipeline for one tenant with a live status line and prints a
per-collection summary when it finishes.
"""

import argparse
import json
import sys
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .api.schemas.shared import PipelineResultModel
from .core.config import settings
from .core.logging_config import configure_logging
from .db.relational_store import SqlAlchemyRelationalStore
from .db.session import get_engine
from .domain.mapping.errors import PipelineFatalError
from .domain.mapping.models import PipelineResult, ProgressEvent
from .domain.mapping.orchestrator import PipelineOrchestrator, summarize_tables
from .domain.mapping.resolver import MappingResolver
from .integrations.document_store import MongoDocumentStore
from .integrations.llm import AnthropicModelProvider


class MappingConsole:
    """Runs a mapping pipeline and renders its progress and results."""

    def __init__(self, orchestrator: PipelineOrchestrator, console: Optional[Console] = None):
        self.orchestrator = orchestrator
        self.console = console or Console()

    def run(self, tenant_id: str) -> Optional[PipelineResult]:
        self.console.print(
            Panel.fit(
                f"[green]Mapping collections for tenant[/green] [bold]{tenant_id}[/bold]",
                title="Tenant Data Mapper",
                border_style="blue",
            )
        )
        try:
            with self.console.status("[bold green]Starting pipeline...", spinner="dots") as status:
                def on_progress(event: ProgressEvent) -> None:
                    status.update(
                        f"[bold green]{event.percentage:5.1f}%[/bold green] {event.stage}: {event.step}"
                    )

                result = self.orchestrator.run(tenant_id, on_progress=on_progress)
        except PipelineFatalError as exc:
            self.console.print(f"[red]❌ Pipeline failed: {exc}[/red]")
            return None

        self.print_summary(result)
        return result

    def print_summary(self, result: PipelineResult) -> None:
        table = Table(title="Collections")
        table.add_column("Collection", style="cyan", no_wrap=True)
        table.add_column("Status", style="white")
        table.add_column("Documents", justify="right")
        table.add_column("Inserted", justify="right")
        table.add_column("Tables", style="white")
        table.add_column("Mapping", style="dim")

        for item in result.results:
            if item.success:
                status = "[green]✓[/green]"
            elif item.skipped:
                status = "[yellow]skipped[/yellow]"
            else:
                status = "[red]✗[/red]"
            tables = ", ".join(f"{t.table} ({t.inserted}/{t.attempted})" for t in item.tables) or "-"
            source = item.mapping.source.value if item.mapping else "-"
            table.add_row(item.collection, status, str(item.documents), str(item.records_inserted), tables, source)

        self.console.print(table)

        per_table = summarize_tables(result)
        if per_table:
            totals = Table(title="Rows inserted per table")
            totals.add_column("Table", style="cyan")
            totals.add_column("Rows", justify="right")
            for name, count in sorted(per_table.items()):
                totals.add_row(name, str(count))
            self.console.print(totals)

        self.console.print(
            f"[bold]Processed[/bold] {result.processed_collections}/{result.total_collections} collections, "
            f"inserted {result.total_records_inserted} records "
            f"(success rate {result.success_rate}%, {result.processing_time_seconds:.2f}s)"
        )


def build_orchestrator(batch_size: Optional[int] = None) -> PipelineOrchestrator:
    relational_store = SqlAlchemyRelationalStore(get_engine())
    if settings.create_catalog_tables:
        relational_store.ensure_catalog_tables()
    return PipelineOrchestrator(
        document_store=MongoDocumentStore(),
        relational_store=relational_store,
        resolver=MappingResolver(AnthropicModelProvider()),
        batch_size=batch_size,
    )


def main(argv=None):
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Tenant Data Mapper - map document collections into the relational catalog",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s 6f1c2a9e-...                 # Map every collection of the tenant
  %(prog)s 6f1c2a9e-... --json          # Print the full result as JSON
        """
    )
    parser.add_argument('tenant_id', help='Tenant (business) identifier whose collections should be mapped')
    parser.add_argument('--batch-size', type=int, default=None, help='Insert batch size (default from settings)')
    parser.add_argument('--json', action='store_true', help='Print the full pipeline result as JSON')
    args = parser.parse_args(argv)

    configure_logging(settings.log_level)

    console = Console()
    if not settings.anthropic_api_key:
        console.print("[yellow]⚠ ANTHROPIC_API_KEY is not set; rule-based mapping will be used.[/yellow]")

    result = MappingConsole(build_orchestrator(args.batch_size), console).run(args.tenant_id)
    if result is None:
        sys.exit(1)

    if args.json:
        console.print_json(json.dumps(PipelineResultModel.from_result(result).to_wire()))


if __name__ == "__main__":
    main()
