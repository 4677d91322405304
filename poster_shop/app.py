from flask import Flask, jsonify
from flask_cors import CORS
from flask_jwt_extended import JWTManager
from werkzeug.middleware.proxy_fix import ProxyFix

from .auth import register_token_callbacks
from .cartlines import cartlines_bp
from .config import Config
from .errors import register_error_handlers
from .genres import genres_bp
from .models import db
from .posters import posters_bp
from .ratings import ratings_bp
from .seed import seed_csv_command
from .users import users_bp


def create_app(config_object=None) -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object or Config)
    app.url_map.strict_slashes = False

    # Honor proxy headers when running behind a load balancer.
    trusted_proxy_hops_raw = app.config.get("TRUSTED_PROXY_HOPS", "1")
    try:
        trusted_proxy_hops = max(0, int(trusted_proxy_hops_raw))
    except (TypeError, ValueError):
        trusted_proxy_hops = 1
    if trusted_proxy_hops:
        app.wsgi_app = ProxyFix(
            app.wsgi_app,
            x_for=trusted_proxy_hops,
            x_proto=trusted_proxy_hops,
            x_host=trusted_proxy_hops,
            x_port=trusted_proxy_hops,
        )

    # --- Initialize extensions ---
    allowed_origins = [
        origin.strip()
        for origin in str(app.config.get("CORS_ALLOWED_ORIGINS") or "").split(",")
        if origin.strip()
    ]
    CORS(app, origins=allowed_origins or "*")

    jwt = JWTManager(app)
    register_token_callbacks(jwt)
    db.init_app(app)
    register_error_handlers(app)

    for blueprint in (users_bp, posters_bp, genres_bp, cartlines_bp, ratings_bp):
        app.register_blueprint(blueprint)
    app.cli.add_command(seed_csv_command)

    @app.route("/api/health")
    def health():
        return jsonify({"status": "API is running"})

    with app.app_context():
        db.create_all()

    return app
