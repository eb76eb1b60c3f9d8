"""
MDP CLI - Command Line Interface for the Merkle distributor

Main entry point for all CLI commands.
"""

import asyncio
import json
import click
from pathlib import Path
from typing import Optional

from mdp.core.errors import MDPError, format_error_with_logs
from mdp.utils.logger import setup_logging, get_logger

logger = get_logger("cli")


def _fail(error: MDPError):
    raise click.ClickException(format_error_with_logs(error))


def _parse_address(value: str, label: str) -> bytes:
    from mdp.core.codec import decode_address

    try:
        return decode_address(value, label)
    except MDPError as e:
        raise click.BadParameter(e.message, param_hint=f"--{label}")


def _load_document(path: str):
    from mdp.core.codec import parse_claim_document

    try:
        return parse_claim_document(Path(path).read_bytes())
    except MDPError as e:
        _fail(e)


def _wallet_record(ctx, name: str) -> dict:
    wallet_path = ctx.obj["data_dir"] / "wallets" / f"{name}.json"
    if not wallet_path.exists():
        raise click.ClickException(f"Wallet {name!r} not found")
    return json.loads(wallet_path.read_text())


def _unlock_wallet(ctx, name: str):
    from mdp.core.identity import Wallet

    data = _wallet_record(ctx, name)
    password = click.prompt(f"Password for {name}", hide_input=True)
    loaded = Wallet.from_encrypted_dict(data, password)
    if loaded is None:
        raise click.ClickException("Wrong password")
    return loaded


def _recipient_option(ctx, recipient: Optional[str], wallet_name: Optional[str]) -> Optional[bytes]:
    if recipient and wallet_name:
        raise click.UsageError("Use either --recipient or --wallet, not both")
    if wallet_name:
        return _parse_address(_wallet_record(ctx, wallet_name)["address"], "wallet")
    if recipient:
        return _parse_address(recipient, "recipient")
    return None


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--data-dir", default="~/.mdp", help="Data directory")
@click.option("--config", "config_path", default=None, help="Path to a .env-style config file")
@click.version_option(version="0.1.0")
@click.pass_context
def cli(ctx, debug, data_dir, config_path):
    """Merkle Distribution Protocol - token distribution by Merkle proof"""
    import logging
    from mdp.core.config import load_config

    try:
        config = load_config(config_path)
    except (FileNotFoundError, ValueError) as e:
        raise click.ClickException(str(e))

    level = logging.DEBUG if debug else logging.INFO
    log_file = setup_logging(level=level, log_dir=str(config.log_dir), log_to_file=config.log_to_file)
    logger.debug(f"Effective config: {config.to_dict()}")
    if log_file is not None:
        logger.debug(f"Writing logs to {log_file}")

    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["data_dir"] = Path(data_dir).expanduser()
    ctx.obj["data_dir"].mkdir(parents=True, exist_ok=True)


# =============================================================================
# Wallet Commands
# =============================================================================

@cli.group()
def wallet():
    """Wallet management commands"""
    pass


@wallet.command("create")
@click.option("--name", default="default", help="Wallet name")
@click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True, help="Encryption password")
@click.pass_context
def wallet_create(ctx, name, password):
    """Create a new encrypted wallet"""
    from mdp.core.identity import Wallet

    wallet_path = ctx.obj["data_dir"] / "wallets" / f"{name}.json"
    if wallet_path.exists():
        raise click.ClickException(f"Wallet {name!r} already exists at {wallet_path}")
    wallet_path.parent.mkdir(parents=True, exist_ok=True)

    new_wallet = Wallet.generate(name=name)
    wallet_path.write_text(json.dumps(new_wallet.to_encrypted_dict(password), indent=2))

    click.echo(f"✓ Wallet created: {name}")
    click.echo(f"  Address: {new_wallet.address_hex}")
    click.echo(f"  Saved to: {wallet_path}")
    click.echo(f"  ⚠️  Remember your password - it cannot be recovered!")


@wallet.command("list")
@click.pass_context
def wallet_list(ctx):
    """List all wallets"""
    wallet_dir = ctx.obj["data_dir"] / "wallets"
    if not wallet_dir.exists():
        click.echo("No wallets found.")
        return

    for wallet_file in sorted(wallet_dir.glob("*.json")):
        data = json.loads(wallet_file.read_text())
        click.echo(f"  {data['name']}: {data['address']}")


@wallet.command("show")
@click.argument("name")
@click.option("--reveal", is_flag=True, help="Decrypt and print the private key")
@click.pass_context
def wallet_show(ctx, name, reveal):
    """Show a wallet's address (and optionally its private key)"""
    data = _wallet_record(ctx, name)

    click.echo(f"Name: {data['name']}")
    click.echo(f"Address: {data['address']}")
    click.echo(f"Public key: {data['public_key']}")

    if reveal:
        loaded = _unlock_wallet(ctx, name)
        click.echo(f"Private key: 0x{loaded.private_key_hex}")


# =============================================================================
# Tree Commands
# =============================================================================

@cli.group()
def tree():
    """Build and check distribution trees"""
    pass


@tree.command("build")
@click.argument("allocations", type=click.Path(exists=True, dir_okay=False))
@click.option("--mint", required=True, help="Mint address (0x...)")
@click.option("--vault", default=None, help="Vault address (default: derived)")
@click.option("--campaign-id", default="campaign-1", help="Campaign id in the manifest")
@click.option("--label", default=None, help="Campaign label")
@click.option("--decimals", default=None, type=int, help="Read amounts as token amounts with this many decimals")
@click.option("--output", "-o", default=None, help="Write the manifest here instead of stdout")
@click.pass_context
def tree_build(ctx, allocations, mint, vault, campaign_id, label, decimals, output):
    """Build a claim manifest from an allocation file"""
    from mdp.core.codec import load_allocations, campaign_from_distribution, build_manifest
    from mdp.core.distributor.accounts import DistributorAddresses
    from mdp.core.merkle import build_distribution
    from mdp.crypto import bytes_to_hex

    config = ctx.obj["config"]
    mint_bytes = _parse_address(mint, "mint")
    addresses = DistributorAddresses.derive(config.program_id, mint_bytes)
    vault_bytes = _parse_address(vault, "vault") if vault else addresses.vault

    try:
        entries = load_allocations(allocations, decimals=decimals)
        distribution = build_distribution(addresses.distributor, entries)
        manifest = build_manifest([
            campaign_from_distribution(distribution, campaign_id, mint_bytes, vault_bytes, label=label)
        ])
    except MDPError as e:
        _fail(e)

    document = manifest.to_json()
    if output:
        Path(output).write_text(document + "\n", encoding="utf-8")
        click.echo(f"✓ Manifest written to {output}")
    else:
        click.echo(document)

    click.echo(f"  Allocations: {len(distribution)}", err=output is None)
    click.echo(f"  Total amount: {distribution.total_amount}", err=output is None)
    click.echo(f"  Depth: {distribution.depth}", err=output is None)
    click.echo(f"  Distributor: {bytes_to_hex(addresses.distributor)}", err=output is None)
    click.echo(f"  Root: {bytes_to_hex(distribution.root)}", err=output is None)


@tree.command("verify")
@click.argument("document", type=click.Path(exists=True, dir_okay=False))
@click.option("--recipient", default=None, help="Recipient address (0x...)")
@click.option("--wallet", "wallet_name", default=None, help="Use a stored wallet's address as the recipient")
@click.option("--campaign", "campaign_id", default=None, help="Campaign id (manifests only)")
@click.pass_context
def tree_verify(ctx, document, recipient, wallet_name, campaign_id):
    """Check a recipient's proof offline"""
    from mdp.core.codec import resolve_claim
    from mdp.crypto import bytes_to_hex

    config = ctx.obj["config"]
    recipient_bytes = _recipient_option(ctx, recipient, wallet_name)
    if recipient_bytes is None:
        raise click.UsageError("Give --recipient or --wallet")
    parsed = _load_document(document)

    try:
        entry = resolve_claim(parsed, recipient_bytes, campaign_id=campaign_id, program_id=config.program_id)
    except MDPError as e:
        _fail(e)

    if entry.verify(recipient_bytes):
        click.echo(f"✓ Proof valid: {entry.label} index={entry.index} amount={entry.amount}")
    else:
        click.echo(f"✗ Proof does not verify for {bytes_to_hex(recipient_bytes)}")
        ctx.exit(1)


# =============================================================================
# Manifest Commands
# =============================================================================

@cli.group()
def manifest():
    """Claim package and manifest tools"""
    pass


@manifest.command("resolve")
@click.argument("document", type=click.Path(exists=True, dir_okay=False))
@click.option("--recipient", default=None, help="Recipient address (default: first entry)")
@click.option("--wallet", "wallet_name", default=None, help="Use a stored wallet's address as the recipient")
@click.option("--campaign", "campaign_id", default=None, help="Campaign id (manifests only)")
@click.pass_context
def manifest_resolve(ctx, document, recipient, wallet_name, campaign_id):
    """Print the claim package for one recipient"""
    from mdp.core.codec import resolve_claim

    config = ctx.obj["config"]
    recipient_bytes = _recipient_option(ctx, recipient, wallet_name)
    parsed = _load_document(document)

    try:
        entry = resolve_claim(parsed, recipient_bytes, campaign_id=campaign_id, program_id=config.program_id)
    except MDPError as e:
        _fail(e)

    click.echo(entry.to_package(recipient_bytes).to_json())


# =============================================================================
# Demo Command
# =============================================================================


@cli.command("demo")
@click.option("--window", default=3600, type=int, help="Claim window length in seconds")
@click.option("--authority", "authority_name", default=None, help="Issue from a stored wallet instead of a fresh one")
@click.pass_context
def demo(ctx, window, authority_name):
    """Run an end-to-end distribution against the devnet ledger"""
    from mdp.core.codec import build_manifest, campaign_from_distribution, resolve_claim
    from mdp.core.distributor.lifecycle import DistributorLifecycle
    from mdp.core.errors import AlreadyClaimed
    from mdp.core.identity import Wallet
    from mdp.core.ledger import DevnetLedger
    from mdp.core.merkle import Allocation, build_distribution
    from mdp.crypto import bytes_to_hex

    config = ctx.obj["config"]
    authority = _unlock_wallet(ctx, authority_name) if authority_name else Wallet.generate("authority")

    click.echo("=" * 60)
    click.echo("  MERKLE DISTRIBUTION PROTOCOL - DEMO")
    click.echo("=" * 60)
    click.echo()

    # Setup
    click.echo("📦 Initializing devnet...")
    click.echo(f"  ✓ Authority: {authority.name} {authority.address_hex}")
    alice = Wallet.generate("alice")
    bob = Wallet.generate("bob")
    carol = Wallet.generate("carol")

    ledger = DevnetLedger.from_config(config)
    lifecycle = DistributorLifecycle(ledger, config=config)
    mint = ledger.create_mint(authority.address, decimals=6)
    ledger.mint_to(authority.address, mint, 1_000_000)
    for w in (authority, alice, bob, carol):
        ledger.airdrop(w.address, 10 * config.claim_record_rent)
    addresses = lifecycle.addresses(mint)
    click.echo(f"  ✓ Mint: {bytes_to_hex(mint)}")
    click.echo(f"  ✓ Distributor: {bytes_to_hex(addresses.distributor)}")
    click.echo()

    # Tree
    click.echo("🌳 Building distribution tree...")
    distribution = build_distribution(addresses.distributor, [
        Allocation(alice.address, 0, 100_000),
        Allocation(bob.address, 1, 250_000),
        Allocation(carol.address, 2, 50_000),
    ])
    document = build_manifest([
        campaign_from_distribution(distribution, "demo", mint, addresses.vault, label="Demo airdrop")
    ])
    click.echo(f"  ✓ Root: {bytes_to_hex(distribution.root)}")
    click.echo(f"  ✓ {len(distribution)} allocations, total {distribution.total_amount}")
    click.echo()

    async def run():
        now = ledger.clock
        click.echo("🏛️  Issuing and funding...")
        await lifecycle.issue(
            authority, mint, distribution.root, now, now + window,
            total_allocations=distribution.total_amount,
        )
        await lifecycle.fund(authority, mint, addresses.vault, distribution.total_amount)
        click.echo(f"  ✓ State: {(await lifecycle.get_state(mint)).name}")
        click.echo()

        click.echo("💸 Alice claims...")
        entry = resolve_claim(document, alice.address, program_id=lifecycle.program_id)
        result = await lifecycle.claim(alice, entry)
        click.echo(f"  ✓ Claimed {result.amount}, balance now {ledger.balance_of(alice.address, mint)}")
        try:
            await lifecycle.claim(alice, entry)
        except AlreadyClaimed as e:
            click.echo(f"  ✓ Second claim refused: {e}")
        click.echo()

        click.echo("🗳️  Bob claims into a governance realm...")
        bob_entry = resolve_claim(document, bob.address, program_id=lifecycle.program_id)
        bob_entry.realm = b"demo-realm".ljust(20, b"\x00")
        result = await lifecycle.claim(bob, bob_entry)
        click.echo(f"  ✓ Deposited {result.amount} into {bytes_to_hex(result.destination)}")
        click.echo()

        click.echo("⏱️  Window ends, Alice closes her claim record...")
        ledger.advance_clock(window + 1)
        await lifecycle.close_claim_record(alice, mint)
        click.echo(f"  ✓ State: {(await lifecycle.get_state(mint)).name}")
        click.echo()

        distributor = await lifecycle.get_distributor(mint)
        click.echo("📊 Final Statistics:")
        click.echo(f"  Claimed: {distributor.total_claimed} of {distributor.total_funded} ({distributor.num_claimed} claims)")
        click.echo(f"  Vault balance: {await ledger.get_balance(addresses.vault)}")
        click.echo(f"  Ledger: {ledger.stats()}")

    try:
        asyncio.run(run())
    except MDPError as e:
        _fail(e)

    click.echo()
    click.echo("✅ Demo complete!")


@cli.command("config")
@click.pass_context
def show_config(ctx):
    """Print the effective configuration"""
    click.echo(json.dumps(ctx.obj["config"].to_dict(), indent=2))


def main(argv: Optional[list] = None):
    cli(args=argv, obj={})


if __name__ == "__main__":
    main()
