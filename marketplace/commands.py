import click

from marketplace.services.quote_service import expire_quotes


def register_commands(app):

    @app.cli.command('expire-quotes')
    def expire_quotes_command():
        """Mark open quotes past their expiry as expired."""
        count = expire_quotes()
        click.echo(f'Expired {count} quote(s).')
