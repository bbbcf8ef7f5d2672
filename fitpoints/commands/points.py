"""
CLI commands for the points ledger.

    flask points earn user-1 50 --description "Challenge winner"
    flask points balance user-1
    flask points verify user-1
"""
import click
from flask.cli import with_appcontext

from ..models import PointsSource
from ..services import get_ledger, get_redemption_service


@click.group('points')
def points_cli():
    """Points ledger commands."""
    pass


@points_cli.command('earn')
@click.argument('member_id')
@click.argument('amount', type=int)
@click.option('--description', default='Manual adjustment', help='Ledger description')
@click.option('--source', type=click.Choice([s.value for s in PointsSource if s != PointsSource.REDEMPTION]),
              default=PointsSource.MANUAL.value, help='Award source')
@with_appcontext
def earn(member_id, amount, description, source):
    """Credit AMOUNT points to MEMBER_ID."""
    result = get_redemption_service().earn_points(
        member_id, amount, description, source=source, created_by='cli'
    )
    if not result['success']:
        raise click.ClickException(result['error'])

    click.echo(f"Credited {amount} pts to {member_id}. New balance: {result['new_balance']}")


@points_cli.command('balance')
@click.argument('member_id')
@click.option('--history', default=0, type=int, help='Also show the N most recent transactions')
@with_appcontext
def balance(member_id, history):
    """Show MEMBER_ID's balance."""
    service = get_redemption_service()
    result = service.get_balance(member_id)

    name = f" ({result['member_name']})" if result['member_name'] else ''
    click.echo(f"{member_id}{name}: {result['balance']} pts")
    click.echo(f"  Lifetime earned: {result['lifetime_earned']}")
    click.echo(f"  Lifetime spent: {result['lifetime_spent']}")

    if history > 0:
        transactions = service.get_transactions(member_id, limit=history)['transactions']
        click.echo(f"\n  Last {len(transactions)} transactions:")
        for t in transactions:
            click.echo(f"    {t['created_at']}  {t['signed_amount']:+d}  {t['description']}")


@points_cli.command('verify')
@click.argument('member_id')
@with_appcontext
def verify(member_id):
    """Recompute MEMBER_ID's balance from the ledger and report drift."""
    report = get_ledger().verify_balance(member_id)

    click.echo(f"Account balance: {report['balance']}")
    click.echo(f"Ledger balance:  {report['ledger_balance']}")
    if not report['consistent']:
        raise click.ClickException(f"Balance drift detected for {member_id}")
    click.echo("OK")


def init_app(app):
    """Register CLI commands with the Flask app."""
    app.cli.add_command(points_cli)
