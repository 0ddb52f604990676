from flask import Flask, jsonify
from config import get_config
from extensions import db, migrate, bcrypt, mail
import logging
from logging.handlers import RotatingFileHandler
import os
import sys

def create_app(config_name=None):
    app = Flask(__name__)

    # Get configuration based on environment or passed parameter
    if config_name:
        from config import config
        app.config.from_object(config[config_name])
    else:
        app.config.from_object(get_config())

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    bcrypt.init_app(app)
    mail.init_app(app)

    # Import models to register them with SQLAlchemy
    import models  # noqa: F401

    # Services shared by requests and background jobs
    from services.encryption_service import EncryptionService
    from services.notification_service import MailTransport, Notifier
    app.extensions['encryption'] = EncryptionService.from_app(app)
    app.extensions['notifier'] = Notifier(MailTransport.from_app(app, mail),
                                          app_name=app.config.get('MAIL_FROM_NAME', 'Final Note'))
    if not app.extensions['encryption'].is_configured:
        app.logger.warning('ENCRYPTION_KEY is missing or invalid; messages cannot be stored')

    # Setup error logging
    if not app.debug and not app.testing:
        level = getattr(logging, app.config.get('LOG_LEVEL', 'INFO'), logging.INFO)
        if app.config.get('LOG_TO_STDOUT'):
            handler = logging.StreamHandler(sys.stdout)
        else:
            if not os.path.exists('logs'):
                os.mkdir('logs')
            handler = RotatingFileHandler('logs/final_note.log', maxBytes=10240, backupCount=10)
        handler.setFormatter(logging.Formatter(
            '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'))
        handler.setLevel(level)
        app.logger.addHandler(handler)
        app.logger.setLevel(level)
        app.logger.info('Final Note startup')

    # Register blueprints
    from routes.switches import switches_bp
    from routes.recipients import recipients_bp
    from routes.verifiers import verifiers_bp
    from routes.verify import verify_bp
    from routes.checkin import checkin_bp
    from routes.cron import cron_bp

    app.register_blueprint(switches_bp, url_prefix='/api')
    app.register_blueprint(recipients_bp, url_prefix='/api')
    app.register_blueprint(verifiers_bp, url_prefix='/api')
    app.register_blueprint(verify_bp, url_prefix='/api')
    app.register_blueprint(checkin_bp, url_prefix='/api')
    app.register_blueprint(cron_bp, url_prefix='/api')

    @app.route('/health')
    def health():
        return jsonify({'success': True, 'status': 'ok'})

    # Error handlers
    from services.errors import FinalNoteError

    @app.errorhandler(FinalNoteError)
    def service_error(error):
        db.session.rollback()
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'success': False, 'error': 'Not found'}), 404

    @app.errorhandler(405)
    def method_not_allowed_error(error):
        return jsonify({'success': False, 'error': 'Method not allowed'}), 405

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        return jsonify({'success': False, 'error': 'Internal server error'}), 500

    return app
