"""
Flask CLI commands for operators.

Commands:
- flask init-db: Create tables (dev/test databases)
- flask release-matured: Move matured sale profit from pending to available
- flask settle-pending: Settle delivered orders that were never settled
- flask reconcile: Check balances against the transaction history
- flask unfreeze-partner: Clear a frozen balance after manual reconciliation
"""
import click
from settlement.database import create_tables, get_session
from settlement.exceptions import LedgerInconsistency
from settlement.services import ledger_service, settlement_service


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create every table from the models."""
        create_tables()
        click.echo(click.style('Tabelas criadas.', fg='green'))

    @app.cli.command('release-matured')
    @click.option('--partner-id', type=int, default=None, help='Only this partner')
    def release_matured(partner_id):
        """Release sale profit older than min_days_to_withdraw."""
        summary = ledger_service.release_matured_funds(get_session(), partner_id=partner_id)
        click.echo(
            f"Liberados {summary['released_count']} lançamento(s), "
            f"R$ {summary['released_amount']} para {summary['partners']} parceiro(s)"
        )
        if summary['skipped_partners']:
            click.echo(click.style(
                f"Parceiros ignorados (bloqueados): {summary['skipped_partners']}", fg='yellow'
            ))

    @app.cli.command('settle-pending')
    def settle_pending():
        """Settle delivered orders without settled_at."""
        summary = settlement_service.settle_pending_orders(get_session())
        click.echo(f"Liquidados: {len(summary['settled'])}")
        if summary['skipped']:
            click.echo(click.style(f"Ignorados (parceiro bloqueado): {summary['skipped']}", fg='yellow'))
        if summary['failed']:
            click.echo(click.style(f"Falharam: {summary['failed']}", fg='red'))
            raise SystemExit(1)

    @app.cli.command('reconcile')
    @click.option('--partner-id', type=int, default=None, help='Only this partner')
    def reconcile(partner_id):
        """Reconcile balances; mismatching partners are frozen."""
        db_session = get_session()
        if partner_id is not None:
            try:
                reports = [ledger_service.reconcile_partner(db_session, partner_id)]
            except LedgerInconsistency as e:
                reports = [{'partner_id': partner_id, 'ok': False, 'problems': e.problems}]
        else:
            reports = ledger_service.reconcile_all(db_session)

        failures = [r for r in reports if not r['ok']]
        for report in failures:
            click.echo(click.style(f"Parceiro {report['partner_id']}: INCONSISTENTE", fg='red', bold=True))
            for problem in report['problems']:
                click.echo(f"   - {problem}")

        click.echo(f"{len(reports)} parceiro(s) verificados, {len(failures)} inconsistente(s)")
        if failures:
            raise SystemExit(1)

    @app.cli.command('unfreeze-partner')
    @click.option('--partner-id', type=int, required=True, help='Partner to unfreeze')
    @click.option('--force', is_flag=True, help='Unfreeze even if the ledger still does not reconcile')
    def unfreeze_partner(partner_id, force):
        """Clear the freeze set by a ledger inconsistency."""
        try:
            ledger_service.unfreeze_partner(get_session(), partner_id, force=force)
        except LedgerInconsistency as e:
            click.echo(click.style(f"Saldo ainda inconsistente: {'; '.join(e.problems)}", fg='red'))
            raise SystemExit(1)
        click.echo(click.style(f"Parceiro {partner_id} desbloqueado.", fg='green'))
