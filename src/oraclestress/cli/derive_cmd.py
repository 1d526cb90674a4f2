"""oraclestress derive-sponsor-wallet -- offline sponsor wallet lookup."""

from __future__ import annotations

from typing import Optional

import typer

from oraclestress.chain.derivation import (
    derive_oracle_address,
    derive_oracle_xpub,
    derive_sponsor_wallet_address,
)


def derive_sponsor_wallet(
    sponsor: str = typer.Option(..., "--sponsor", help="Sponsor address"),
    xpub: Optional[str] = typer.Option(None, "--xpub", help="Oracle extended public key"),
    oracle_address: Optional[str] = typer.Option(None, "--oracle-address", help="Oracle address"),
    mnemonic: Optional[str] = typer.Option(
        None, "--mnemonic", help="Oracle mnemonic (derives xpub and address)"
    ),
) -> None:
    """Print the sponsor wallet an oracle uses for a sponsor."""
    if mnemonic:
        xpub = derive_oracle_xpub(mnemonic)
        oracle_address = derive_oracle_address(mnemonic)
    if not xpub or not oracle_address:
        typer.echo("Error: pass --mnemonic, or both --xpub and --oracle-address", err=True)
        raise typer.Exit(code=1)

    try:
        address = derive_sponsor_wallet_address(xpub, oracle_address, sponsor)
    except ValueError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"oracle:         {oracle_address}")
    typer.echo(f"xpub:           {xpub}")
    typer.echo(f"sponsor:        {sponsor}")
    typer.echo(f"sponsor wallet: {address}")
