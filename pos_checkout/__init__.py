"""Flask application factory."""
from flask import Flask, request, jsonify
from flask_wtf.csrf import CSRFProtect, CSRFError
from pos_checkout.database import init_db
import logging
import os


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    logging.basicConfig(level=app.config.get('LOG_LEVEL', 'INFO'))
    app.logger.setLevel(app.config.get('LOG_LEVEL', 'INFO'))

    # CSRF protection
    csrf = CSRFProtect(app)

    @app.errorhandler(CSRFError)
    def handle_csrf_error(e):
        app.logger.warning(f"CSRF Error: {e.description}")
        return jsonify({'status': 'error', 'message': 'Session expired. Reload the page.'}), 400

    # Sentry error tracking in production
    if os.getenv('SENTRY_DSN') and (app.config.get('ENV') == 'production' or os.getenv('FLASK_ENV') == 'production'):
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=os.getenv('SENTRY_DSN'),
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            environment=os.getenv('FLASK_ENV', 'production'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Redis cache for store settings
    from pos_checkout.services.cache_service import init_cache
    init_cache(app)

    # Receipt printing
    from pos_checkout.services.print_service import spool_dispatcher
    app.extensions['print_dispatcher'] = spool_dispatcher(
        app.config.get('RECEIPT_SPOOL_DIR', 'receipts'),
        app.config.get('RECEIPT_OPEN_BROWSER', False)
    )

    # Prometheus metrics instrumentation
    from pos_checkout.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Production: trust the reverse proxy headers
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=0)

    # Database
    init_db(app)

    # Error handlers
    from pos_checkout.exceptions import PosError

    @app.errorhandler(PosError)
    def handle_pos_error(error):
        """Application errors as JSON with their own status code."""
        if error.status_code >= 500:
            app.logger.error(f"PosError [{error.status_code}]: {error.message}")
        else:
            app.logger.info(f"PosError [{error.status_code}]: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'status': 'error', 'message': 'Not Found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'status': 'error', 'message': 'Method Not Allowed'}), 405

    @app.errorhandler(500)
    def internal_error(error):
        app.logger.error(f"Unhandled Exception on {request.path}: {error}", exc_info=True)
        return jsonify({'status': 'error', 'message': 'Internal Server Error'}), 500

    # Blueprints
    from pos_checkout.blueprints.pos import pos_bp
    from pos_checkout.blueprints.metrics import metrics_bp

    app.register_blueprint(pos_bp)
    # JSON-only API driven by the counter client; there is no form to carry a token
    csrf.exempt(pos_bp)
    app.register_blueprint(metrics_bp)

    # CLI commands
    from pos_checkout.cli_commands import init_cli_commands
    init_cli_commands(app)

    app.logger.info(
        f"[APP] Receipt template={app.config.get('RECEIPT_TEMPLATE')}, "
        f"rounding={app.config.get('PAYABLE_ROUNDING')}"
    )

    return app
