from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
import click

db = SQLAlchemy()
bcrypt = Bcrypt()
login_manager = LoginManager()
migrate = Migrate()


def create_app(config_class=None, control=None, clock=None):
    if config_class is None:
        from config import Config
        config_class = Config

    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=flask_app.config.get('CORS_ORIGINS', []))

    # Services share one store handle; control/clock are injectable for tests
    from coinhost.services import build_services
    flask_app.extensions['coinhost'] = build_services(flask_app, db, control=control, clock=clock)

    # Import and register blueprints here
    from coinhost.main import main
    flask_app.register_blueprint(main)

    from coinhost.api import register_error_handlers
    from coinhost.api.auth import auth
    from coinhost.api.servers import servers
    from coinhost.api.admin import admin
    flask_app.register_blueprint(auth, url_prefix='/api/auth')
    flask_app.register_blueprint(servers, url_prefix='/api/servers')
    flask_app.register_blueprint(admin, url_prefix='/api/admin')
    register_error_handlers(flask_app)

    # Flask-Login user loader
    from coinhost.models import Account

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(Account, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'error': 'Authentication required'}), 401

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        from coinhost.models import ROLE_ADMIN
        from coinhost.services import get_services
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            accounts = get_services(flask_app).accounts
            admin_account = accounts.create_account('admin', 'admin@example.com', 'password', role=ROLE_ADMIN)
            for u in ['testuser1', 'testuser2']:
                accounts.create_account(u, f'{u}@example.com', 'password', referral_code=admin_account.referral_code)
            print('Database has been reset and seeded!')

    @click.command('sweep-expired')
    def sweep_expired_command():
        """Expire servers whose deadline has passed."""
        from coinhost.services import get_services
        with flask_app.app_context():
            expired = get_services(flask_app).sweeper.sweep_expired()
            print(f'Expired {len(expired)} servers')

    @click.command('purge-expired')
    def purge_expired_command():
        """Delete servers that have been expired longer than the retention window."""
        from coinhost.services import get_services
        with flask_app.app_context():
            count = get_services(flask_app).sweeper.purge_expired()
            print(f'Cleaned up {count} old servers')

    @click.command('run-sweeper')
    def run_sweeper_command():
        """Run the expiration sweeper in the foreground until interrupted."""
        from coinhost.services import get_services
        sweeper = get_services(flask_app).sweeper
        thread = sweeper.start(flask_app)
        if thread is None:
            print('Sweeper is disabled (ENABLE_SWEEPER is off or TESTING is set)')
            return
        try:
            thread.join()
        except KeyboardInterrupt:
            sweeper.stop()

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(sweep_expired_command)
    flask_app.cli.add_command(purge_expired_command)
    flask_app.cli.add_command(run_sweeper_command)

    return flask_app
