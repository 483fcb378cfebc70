"""
Flask CLI commands.

Commands:
- flask init-db: Create the database tables
- flask reprint <sale_id>: Send a stored sale's receipt to the printer spool
"""

import click
from flask import current_app
from pos_checkout.database import create_schema, get_session
from pos_checkout.exceptions import PosError


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create all tables that do not exist yet."""
        create_schema()
        click.echo(click.style('Database tables created.', fg='green'))

    @app.cli.command('reprint')
    @click.argument('sale_id', type=int)
    @click.option('--template', default=None, help='compact, branded or detailed')
    def reprint(sale_id, template):
        """Reprint a stored sale using the current store settings."""
        from pos_checkout.services.print_service import print_sale
        from pos_checkout.services.sales_service import SaleRepository
        from pos_checkout.services.settings_service import StoreSettingsProvider, defaults_from_config

        session = get_session()
        provider = StoreSettingsProvider(
            session,
            defaults_from_config(current_app.config),
            current_app.extensions.get('cache')
        )
        try:
            sale = SaleRepository(session).get_sale(sale_id)
        except PosError as e:
            click.echo(click.style(f'Error: {e.message}', fg='red'))
            raise SystemExit(1)

        result = print_sale(sale, provider.get(), current_app.extensions['print_dispatcher'], template)
        if result.ok:
            click.echo(click.style(f'Receipt written to {result.location}', fg='green'))
        else:
            click.echo(click.style(f'Warning: {result.warning}', fg='yellow'))
