"""CLI commands for business token catalogue management."""

import asyncio
from typing import Any, Dict, List, Optional, Tuple

import click
from sqlalchemy import select
from tabulate import tabulate

from onramp.business.config import default_supported_tokens, serialize_tokens
from onramp.observability.logging import get_logger
from onramp.storage.db import close_database, get_session
from onramp.storage.models import Business


logger = get_logger(__name__)


def merge_default_tokens(
    existing: Optional[Dict[str, Any]],
) -> Tuple[Dict[str, List[Dict[str, Any]]], List[str]]:
    """
    Fill networks that have no tokens with the default catalogue.

    Networks that already list tokens are left as they are, so a merchant's
    own catalogue is never overwritten.

    Args:
        existing: Stored ``supported_tokens`` document, possibly empty

    Returns:
        Tuple of the merged document and the networks that were seeded
    """
    merged: Dict[str, List[Dict[str, Any]]] = dict(existing or {})
    seeded = []
    for network, entries in serialize_tokens(default_supported_tokens()).items():
        if not merged.get(network):
            merged[network] = entries
            seeded.append(network)
    return merged, seeded


@click.group()
def cli():
    """Business onramp engine management commands."""
    pass


@cli.command("seed-default-tokens")
@click.option("--business-id", help="Seed a single business")
@click.option("--all", "all_businesses", is_flag=True, help="Seed every business")
@click.option("--dry-run", is_flag=True, help="Show what would change without writing")
def seed_default_tokens(business_id: Optional[str], all_businesses: bool, dry_run: bool):
    """Add the default token catalogue to businesses missing networks."""
    if bool(business_id) == all_businesses:
        raise click.UsageError("Pass exactly one of --business-id or --all")

    async def run():
        try:
            async with get_session() as db:
                stmt = select(Business).order_by(Business.business_id)
                if business_id:
                    stmt = stmt.where(Business.business_id == business_id)
                businesses = (await db.execute(stmt)).scalars().all()

                if not businesses:
                    click.echo(f"No business found for {business_id or 'any id'}")
                    return 1

                table_data = []
                for business in businesses:
                    merged, seeded = merge_default_tokens(business.supported_tokens)
                    if seeded and not dry_run:
                        business.supported_tokens = merged
                        logger.info("Seeded default tokens",
                                    business_id=business.business_id, networks=seeded)
                    table_data.append([
                        business.business_id,
                        business.business_name,
                        ", ".join(seeded) or "-",
                        sum(len(entries) for entries in merged.values()),
                    ])

                if dry_run:
                    await db.rollback()

                headers = ["Business", "Name", "Seeded Networks", "Total Tokens"]
                click.echo(tabulate(table_data, headers=headers, tablefmt="grid"))
                if dry_run:
                    click.echo("Dry run, nothing written")
                return 0
        finally:
            await close_database()

    exit_code = asyncio.run(run())
    if exit_code:
        raise SystemExit(exit_code)


@cli.command("show-tokens")
@click.option("--business-id", required=True, help="Business id")
def show_tokens(business_id: str):
    """List a business's configured tokens per network."""

    async def run():
        try:
            async with get_session() as db:
                return (
                    await db.execute(select(Business).where(Business.business_id == business_id))
                ).scalar_one_or_none()
        finally:
            await close_database()

    business = asyncio.run(run())
    if business is None:
        click.echo(f"No business found for {business_id}")
        raise SystemExit(1)

    table_data = []
    for network, entries in sorted((business.supported_tokens or {}).items()):
        for entry in entries:
            table_data.append([
                network,
                entry.get("symbol"),
                entry.get("contractAddress"),
                entry.get("decimals"),
                "✅" if entry.get("isActive", True) and entry.get("isTradingEnabled", True) else "❌",
            ])

    headers = ["Network", "Symbol", "Contract", "Decimals", "Tradable"]
    click.echo(tabulate(table_data, headers=headers, tablefmt="grid"))


if __name__ == "__main__":
    cli()
