import click
from flask import Flask
from .extensions import db, migrate, redis_store


def create_app(config_object='config.Config'):
    """App factory.

    Wires the database, migrations and the Redis connection used by the retry
    queue. The retry dispatcher is not started here; run it with
    ``flask retry-worker`` or ``scripts/run_retry_worker.py``.
    """
    app = Flask(__name__)
    app.config.from_object(config_object)
    app.logger.setLevel(app.config.get('LOG_LEVEL', 'INFO'))

    db.init_app(app)
    migrate.init_app(app, db, directory='alembic')
    redis_store.init_app(app)

    # register models on the metadata
    from . import models  # noqa: F401

    @app.cli.command('retry-worker')
    @click.option('--once', is_flag=True, help='Run a single dispatch tick and exit.')
    def retry_worker(once):
        """Dispatch ready jobs from the retry queue."""
        from .jobs.retry_worker import RetryDispatcher
        dispatcher = RetryDispatcher(app)
        if once:
            click.echo(f'dispatched {dispatcher.run_once()} job(s)')
            return
        if not app.config.get('RETRY_WORKER_ENABLED', True):
            click.echo('RETRY_WORKER_ENABLED is off; nothing to do')
            return
        try:
            dispatcher.run_forever()
        except KeyboardInterrupt:
            dispatcher.stop()

    @app.cli.command('init-db')
    def init_db():
        """Create tables directly (development without migrations)."""
        db.create_all()
        click.echo('tables created')

    return app
