"""
CLI entry point for Loyalty API.
"""

import asyncio
import json
from pathlib import Path
from typing import Optional

import structlog
import typer

from .errors import LoyaltyError
from .merkle import ProofStep, Side, build_proof, from_hex, hash_leaf, verify_proof

# Configure structlog
structlog.configure(
    processors=[
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ]
)

app = typer.Typer(
    name="loyalty-api",
    help="Loyalty rewards API and Merkle proof tools",
    add_completion=False,
)


@app.command()
def serve() -> None:
    """
    Start the API server (settings come from the environment / .env).
    """
    from .main import run

    run()


@app.command()
def proof(
    addresses: list[str] = typer.Argument(..., help="Wallet addresses forming the tree"),
    target: str = typer.Option(..., "--target", "-t", help="Address to prove"),
    output_file: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Output file for proof JSON"
    ),
) -> None:
    """
    Build a Merkle inclusion proof for TARGET.

    Example:
        loyalty-api proof 0xA 0xB 0xC 0xD --target 0xB
    """
    try:
        result = build_proof(addresses, target)
    except LoyaltyError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    output = json.dumps(result.to_dict(), indent=2)
    if output_file:
        output_file.write_text(output)
        typer.echo(f"Proof written to {output_file}")
    else:
        typer.echo(output)


@app.command()
def verify(
    proof_file: Path = typer.Argument(..., help="Proof JSON as produced by `proof`"),
    address: Optional[str] = typer.Option(
        None, "--address", "-a", help="Recompute the leaf from this address instead of the file's leaf"
    ),
    root: Optional[str] = typer.Option(
        None, "--root", "-r", help="Expected root (defaults to the file's root)"
    ),
) -> None:
    """
    Verify a Merkle inclusion proof.
    """
    try:
        data = json.loads(proof_file.read_text())
        leaf = hash_leaf(address) if address else from_hex(data["leaf"])
        expected_root = from_hex(root or data["root"])
        steps = [ProofStep(hash=from_hex(s["hash"]), side=Side(s["side"])) for s in data["proof"]]
    except (OSError, KeyError, ValueError, LoyaltyError) as e:
        typer.echo(f"Error: unreadable or malformed proof file ({e})", err=True)
        raise typer.Exit(1)

    if verify_proof(steps, leaf, expected_root):
        typer.echo("✓ Proof is valid")
    else:
        typer.echo("✗ Proof is invalid")
        raise typer.Exit(1)


@app.command()
def voting_power(
    wallet: str = typer.Argument(..., help="Wallet address"),
) -> None:
    """
    Read a wallet's governance token voting power.
    """
    from .config import get_settings
    from .governance import GovernanceClient

    async def _lookup() -> str:
        client = GovernanceClient(get_settings())
        return await client.get_voting_power(wallet)

    try:
        power = asyncio.run(_lookup())
    except LoyaltyError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    typer.echo(f"{wallet}: {power}")


@app.command()
def version() -> None:
    """Show the API version."""
    from loyalty_api import __version__
    typer.echo(f"loyalty-api v{__version__}")


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
