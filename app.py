import click
from flask import Flask
from flask_migrate import Migrate

import services
from config import Config
from models import db
from routes import health_bp, auth_bp, two_factor_bp
from security.password import hash_password
from security.password_policy import validate_password
from utils.auth_context import load_current_user
from utils.emailer import send_two_factor_code
from utils.errors import AuthServiceError, register_error_handlers


def create_app(config_object=Config, send_code=send_two_factor_code):
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(two_factor_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # Credential store, TOTP/email providers, sessions, orchestrators
    services.init_app(app, send_code=send_code)

    register_error_handlers(app)

    @app.before_request
    def _load_user():
        load_current_user()

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Cache-Control"] = "no-store"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    register_cli(app)

    return app

#-------------------------

def register_cli(app):
    @app.cli.command("purge-expired")
    def purge_expired():
        """Delete expired sessions, email codes and pending logins."""
        counts = services.get_services().purge_expired()
        for name, count in counts.items():
            click.echo(f"{name}: {count} removed")

    @app.cli.command("create-user")
    @click.argument("email")
    @click.argument("name")
    @click.password_option()
    def create_user(email, name, password):
        """Create an account (bootstrap)."""
        valid, errors = validate_password(password)
        if not valid:
            for error in errors:
                click.echo(error, err=True)
            raise SystemExit(1)
        try:
            user = services.get_services().credentials.create_user(email, name, hash_password(password))
        except AuthServiceError as exc:
            click.echo(exc.message, err=True)
            raise SystemExit(1)
        click.echo(f"{user.email} created ({user.id})")

#-------------------------


if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
