"""
CLI commands for redemption requests.

Can be run manually or from cron instead of the background scheduler:

# Expire stale pending requests (bookkeeping only)
*/5 * * * * cd /app && flask redemptions sweep-expired
"""
import click
from flask.cli import with_appcontext

from ..models import RedemptionRequest, RedemptionStatus
from ..services import get_redemption_service


@click.group('redemptions')
def redemptions_cli():
    """Redemption request commands."""
    pass


@redemptions_cli.command('sweep-expired')
@with_appcontext
def sweep_expired():
    """Move pending requests past their window to expired."""
    result = get_redemption_service().sweep_expired()
    if not result['success']:
        raise click.ClickException(result['error'])
    click.echo(f"Expired {result['expired']} stale requests")


@redemptions_cli.command('pending')
@click.option('--member-id', help='Only this member (expires stale ones on read)')
@with_appcontext
def pending(member_id):
    """List pending redemption requests."""
    if member_id:
        requests = get_redemption_service().get_member_pending_requests(member_id)['requests']
    else:
        requests = [
            r.to_dict() for r in RedemptionRequest.query.filter_by(
                status=RedemptionStatus.PENDING.value
            ).order_by(RedemptionRequest.created_at.desc()).all()
        ]

    if not requests:
        click.echo("No pending requests")
        return

    for r in requests:
        click.echo(
            f"  #{r['id']} {r['verification_code']}  {r['member_id']}  "
            f"{r['amount']} pts  expires {r['expires_at']}"
        )
    click.echo(f"\nTOTAL: {len(requests)} pending")


def init_app(app):
    """Register CLI commands with the Flask app."""
    app.cli.add_command(redemptions_cli)
