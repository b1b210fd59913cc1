from flask import Flask, jsonify
from flask_migrate import Migrate
from flask_login import LoginManager
from marketplace.extensions import db
from marketplace.config import Config
from marketplace.errors import WorkflowError
from marketplace.middleware import setup_auth_middleware
import logging
import os

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler('app.log'),
        logging.StreamHandler()
    ]
)

logger = logging.getLogger(__name__)

migrate = Migrate()
login_manager = LoginManager()


def create_app(config_class=Config):
    static_dir = os.path.abspath(
        os.path.join(
            os.path.dirname(__file__),
            "..",
            "static"))
    app = Flask(
        __name__,
        static_folder=static_dir,
        static_url_path="/static",
    )
    app.config.from_object(config_class)

    if not app.config.get('DESIGN_UPLOAD_FOLDER'):
        app.config['DESIGN_UPLOAD_FOLDER'] = os.path.join(
            static_dir, 'uploads', 'designs')

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    # Setup user loader
    from marketplace.models import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    # Register blueprints
    from marketplace.blueprints import (
        auth,
        cart,
        catalog,
        conversations,
        design_approvals,
        orders,
        quotes,
    )

    app.register_blueprint(auth.bp, url_prefix='/api/auth')
    app.register_blueprint(catalog.bp, url_prefix='/api')
    app.register_blueprint(conversations.bp, url_prefix='/api/conversations')
    app.register_blueprint(quotes.bp, url_prefix='/api/quotes')
    app.register_blueprint(
        design_approvals.bp,
        url_prefix='/api/design-approvals')
    app.register_blueprint(cart.bp, url_prefix='/api/cart')
    app.register_blueprint(orders.bp, url_prefix='/api/orders')

    @app.errorhandler(WorkflowError)
    def handle_workflow_error(e):
        logger.info(
            "Workflow error code=%s status=%s message=%s",
            e.code,
            e.status_code,
            e.message,
        )
        return jsonify(e.to_dict()), e.status_code

    # Setup authentication middleware (API-wide login protection)
    setup_auth_middleware(app)

    from marketplace.commands import register_commands
    register_commands(app)

    # Note: Database tables are managed via Flask-Migrate
    # Use 'flask db upgrade' to create/update tables

    logger.info("Flask application initialized")
    return app
