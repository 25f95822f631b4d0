"""CLI commands for BloodLink API."""

import click

from bloodlink_api.auth.identity import Identity, create_access_token
from bloodlink_api.certificates.orchestrator import ApprovalOrchestrator
from bloodlink_api.db.seed import seed_all
from bloodlink_api.db.session import SessionLocal
from bloodlink_api.errors import BloodLinkError
from bloodlink_api.ledger.client import LocalLedgerClient, get_ledger_client
from bloodlink_api.models import UserProfile
from bloodlink_api.models.profile import ROLE_HOSPITAL
from bloodlink_api.settings import get_settings
from bloodlink_api.storage.service import get_file_store


@click.group()
def cli():
    """BloodLink API CLI."""
    pass


@cli.command()
@click.option("--reload", is_flag=True, help="Reload on code changes.")
def serve(reload):
    """Run the API server."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "bloodlink_api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=reload,
    )


@cli.command()
def seed():
    """Seed demo donor and hospital profiles."""
    click.echo("Seeding initial data...")
    db = SessionLocal()
    try:
        seed_all(db)
        click.echo("✓ Seed data created.")
    except Exception as e:
        click.echo(f"✗ Error seeding data: {e}", err=True)
        db.rollback()
        raise SystemExit(1)
    finally:
        db.close()


@cli.command("issue-token")
@click.argument("user_id")
@click.option("--hours", type=int, default=None, help="Token lifetime in hours.")
def issue_token(user_id, hours):
    """Issue a development access token for USER_ID."""
    click.echo(create_access_token(user_id, expires_hours=hours))


@cli.command()
@click.argument("certificate_id")
@click.option("--reviewer-id", required=True, help="Hospital reviewer profile id.")
@click.option("--tx-hash", default=None, help="Transaction hash reported by a timed-out decision.")
def reconcile(certificate_id, reviewer_id, tx_hash):
    """Re-read the ledger for CERTIFICATE_ID and repair its record."""
    db = SessionLocal()
    try:
        reviewer = db.query(UserProfile).filter(UserProfile.id == reviewer_id).first()
        if not reviewer or reviewer.role != ROLE_HOSPITAL:
            raise click.ClickException(f"{reviewer_id} is not a hospital reviewer")
        identity = Identity(user_id=reviewer.id, role=reviewer.role, email=reviewer.email)
        orchestrator = ApprovalOrchestrator(db, get_ledger_client(), get_file_store())
        result = orchestrator.reconcile(identity, certificate_id, tx_hash=tx_hash)
        click.echo(f"{result.certificate_id}: {result.status}")
        if result.tx_hash:
            click.echo(f"  tx_hash: {result.tx_hash}")
    except BloodLinkError as e:
        raise click.ClickException(f"{e.error_code}: {e.detail}")
    finally:
        db.close()


@cli.command("ledger-admin")
def ledger_admin():
    """Show the ledger admin address."""
    ledger = get_ledger_client()
    click.echo(f"contract: {ledger.contract_address}")
    click.echo(f"admin:    {ledger.admin()}")


@cli.command("transfer-admin")
@click.argument("new_admin")
@click.confirmation_option(prompt="Hand ledger write access to another address?")
def transfer_admin(new_admin):
    """Transfer ledger write access to NEW_ADMIN."""
    try:
        receipt = get_ledger_client().transfer_admin(new_admin)
    except BloodLinkError as e:
        raise click.ClickException(f"{e.error_code}: {e.detail}")
    click.echo(f"✓ Admin transferred in {receipt.tx_hash} (block {receipt.block_number})")


@cli.command("verify-ledger-chain")
def verify_ledger_chain():
    """Check the local ledger event chain for tampering."""
    ledger = get_ledger_client()
    if not isinstance(ledger, LocalLedgerClient):
        raise click.ClickException("Chain verification is only available for the local ledger")
    is_valid, error = ledger.verify_chain()
    if not is_valid:
        raise click.ClickException(f"Ledger chain invalid: {error}")
    click.echo("✓ Ledger chain valid.")


if __name__ == "__main__":
    cli()
