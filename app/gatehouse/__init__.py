import logging
from datetime import timedelta

from dotenv import load_dotenv
from flask import Flask, g, render_template

from app.gatehouse.admin import bp as administration_bp
from app.gatehouse.auth import bp as auth_bp, load_current_account
from app.gatehouse.config import Settings
from app.gatehouse.db import init_db
from app.gatehouse.rbac import authorize_request, init_authorization
from app.gatehouse.routes import bp as home_bp
from app.gatehouse.security import csrf_protect, ensure_csrf_token

logger = logging.getLogger(__name__)


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(403)
    def forbidden(e):
        return render_template("home/unauthorized.html"), 403

    @app.errorhandler(404)
    def not_found(e):
        return render_template("errors/404.html"), 404

    @app.errorhandler(500)
    def server_error(e):
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        s = g.get("db_session")
        if s is not None:
            s.rollback()
        return render_template("errors/500.html"), 500


def create_app() -> Flask:
    load_dotenv()
    settings = Settings.from_env()
    # Refuse unsafe production settings before touching the database.
    problems = settings.problems()
    if problems:
        for problem in problems:
            logger.error(problem)
        raise RuntimeError(" ".join(problems))

    app = Flask(__name__, template_folder="templates")
    app.config.from_mapping(settings.flask_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.logger.setLevel(settings.log_level)

    init_db(app)
    init_authorization(app)

    app.register_blueprint(home_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(administration_bp, url_prefix="/administration")

    # Runs in order: who is asking, is the form genuine, may they do it.
    app.before_request(load_current_account)
    app.before_request(csrf_protect)
    app.before_request(authorize_request)
    app.context_processor(lambda: {"csrf_token": ensure_csrf_token()})
    _register_error_handlers(app)

    logger.info("create_app() complete (env=%s authorization=%s)", settings.env, settings.authorization_enabled)
    return app
