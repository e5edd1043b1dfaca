# app.py
"""
Flask application factory for the form relay service

Each form (contact, signup, sub-domain contact) gets its own blueprint,
in-memory store and submission pipeline. All of them share:
- One mail dispatcher backed by a pooled SMTP transport
- Per-address rate limiting (Flask-Limiter) for the contact forms
- JSON error handling, security headers and request timing
- A background retention sweeper for forms with a retention period

Run locally with ``python app.py`` or under a WSGI server with
``gunicorn 'app:create_app()'``.
"""

import atexit
import logging
import logging.handlers
from datetime import datetime
from typing import Any, Optional

from flask import Flask, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from api.forms import create_form_blueprint
from api.responses import error_response
from config.settings import get_config
from core.email_renderer import Branding
from core.errors import FormServiceError
from core.forms import build_form_definitions
from core.store import InMemorySubmissionStore
from middleware.rate_limiting import init_rate_limiting
from middleware.security import register_request_hooks
from services.mail_dispatcher import (
    MailDispatcher, MailSettings, MailTransport, UnconfiguredTransport, build_transport
)
from services.submission_pipeline import SubmissionPipeline
from tasks.retention_sweeper import RetentionSweeper

logger = logging.getLogger(__name__)

_HANDLER_NAME = 'formrelay'


def setup_logging(app: Flask) -> None:
    """
    Configure console (and optional rotating file) logging

    Handlers are attached to the root logger so module loggers share them;
    handlers installed by an earlier app instance are replaced.
    """
    app.logger.handlers.clear()

    detailed_formatter = logging.Formatter(
        fmt='%(asctime)s %(name)-28s %(levelname)-8s %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    log_level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(log_level)
    for handler in [h for h in root.handlers if h.get_name() == _HANDLER_NAME]:
        root.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler()
    console_handler.set_name(_HANDLER_NAME)
    console_handler.setFormatter(detailed_formatter)
    console_handler.setLevel(log_level)
    root.addHandler(console_handler)

    log_file = app.config.get('LOG_FILE')
    if log_file:
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=10*1024*1024,  # 10MB
            backupCount=5
        )
        file_handler.set_name(_HANDLER_NAME)
        file_handler.setFormatter(detailed_formatter)
        file_handler.setLevel(log_level)
        root.addHandler(file_handler)

    if not app.debug:
        logging.getLogger('werkzeug').setLevel(logging.WARNING)
        logging.getLogger('aiosmtplib').setLevel(logging.WARNING)


def configure_error_handlers(app: Flask) -> None:
    """JSON error responses; internals are only exposed outside production"""
    expose_detail = app.config.get('APP_ENV') != 'production'

    @app.errorhandler(FormServiceError)
    def form_service_error(error):
        if error.status_code >= 500:
            logger.error(f"{type(error).__name__} on {request.path}: {str(error)}")
        return error_response(error, expose_detail=expose_detail)

    @app.errorhandler(400)
    def bad_request(error):
        logger.warning(f"Bad request from {request.remote_addr}: {error}")
        return jsonify({
            'success': False,
            'message': 'Invalid request format or parameters'
        }), 400

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({
            'success': False,
            'message': 'The requested resource was not found'
        }), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({
            'success': False,
            'message': f"Method {request.method} not allowed for {request.path}"
        }), 405

    @app.errorhandler(413)
    def payload_too_large(error):
        return jsonify({
            'success': False,
            'message': 'Request body is too large'
        }), 413

    @app.errorhandler(500)
    def internal_error(error):
        logger.error(f"Internal server error: {error}", exc_info=True)
        return jsonify({
            'success': False,
            'message': 'An unexpected error occurred'
        }), 500

    @app.errorhandler(Exception)
    def handle_exception(e):
        """Handle unexpected exceptions"""
        if isinstance(e, HTTPException):
            return e

        logger.error(f"Unhandled exception: {e}", exc_info=True)
        body = {
            'success': False,
            'message': 'An unexpected error occurred'
        }
        if expose_detail:
            body['error'] = str(e)
        return jsonify(body), 500


def configure_health_checks(app: Flask) -> None:
    @app.route('/health')
    def health_check():
        """Basic liveness check"""
        return jsonify({
            'status': 'healthy',
            'timestamp': datetime.utcnow().isoformat(),
            'environment': app.config.get('APP_ENV'),
            'mail_configured': not isinstance(app.dispatcher.transport, UnconfiguredTransport),
            'submissions': {name: len(store) for name, store in app.stores.items()},
        })


def create_app(config_name: Optional[str] = None,
               transport: Optional[MailTransport] = None,
               **overrides: Any) -> Flask:
    """
    Flask application factory

    Args:
        config_name: 'development', 'testing' or 'production'; defaults to
            APP_ENV / FLASK_ENV / NODE_ENV
        transport: mail transport to use instead of the pooled SMTP one
        **overrides: config keys applied on top of the selected config

    Returns:
        Configured Flask application instance
    """
    app = Flask(__name__)

    config_class = get_config(config_name)
    app.config.from_object(config_class)
    app.config.update(overrides)
    app.config['START_TIME'] = datetime.utcnow()

    if app.config.get('TRUST_PROXY'):
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)

    setup_logging(app)
    logger.info(f"Starting form relay in {app.config['APP_ENV']} mode")

    CORS(app, origins=app.config.get('CORS_ORIGINS', '*'))
    limiter = init_rate_limiting(app)
    app.limiter = limiter

    mail_settings = MailSettings.from_config(app.config)
    if transport is None:
        transport = build_transport(mail_settings, required=app.config.get('MAIL_REQUIRED', False))
    dispatcher = MailDispatcher(transport, mail_settings)
    app.dispatcher = dispatcher

    branding = Branding.from_config(app.config)
    app.stores = {}
    app.pipelines = {}
    for form in build_form_definitions(retention=app.config.get('RETENTION_PERIOD')):
        store = InMemorySubmissionStore(form.name, retention=form.retention)
        pipeline = SubmissionPipeline(form, store, dispatcher, branding)
        app.register_blueprint(create_form_blueprint(pipeline, limiter), url_prefix=form.url_prefix)
        app.stores[form.name] = store
        app.pipelines[form.name] = pipeline
        logger.debug(f"Registered {form.name} form under {form.url_prefix}")

    configure_error_handlers(app)
    configure_health_checks(app)
    register_request_hooks(app)

    sweeper = RetentionSweeper(app.stores.values(), app.config.get('SWEEP_INTERVAL_SECONDS', 3600))
    app.sweeper = sweeper
    if app.config.get('SWEEP_ENABLED'):
        sweeper.start()

    def shutdown_handler():
        logger.info("Shutting down, closing mail connections")
        sweeper.stop()
        dispatcher.stop()

    def shutdown():
        """Stop background threads now and drop the exit hook"""
        atexit.unregister(shutdown_handler)
        shutdown_handler()

    atexit.register(shutdown_handler)
    app.shutdown = shutdown

    logger.info("Flask application factory completed successfully")
    return app


if __name__ == '__main__':
    app = create_app()
    app.run(
        host='0.0.0.0',
        port=app.config['PORT'],
        debug=app.config['APP_ENV'] == 'development'
    )
