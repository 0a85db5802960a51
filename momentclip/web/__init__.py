"""Flask application factory for the MomentClip API."""

from flask import Flask, jsonify

from momentclip.config import Settings, load_settings
from momentclip.services import build_pipeline


def create_app(settings: Settings | None = None) -> Flask:
    app = Flask(__name__)
    settings = settings or load_settings()
    app.config["SETTINGS"] = settings
    app.config["PIPELINE"] = build_pipeline(settings)
    app.config["MAX_CONTENT_LENGTH"] = 10 * 1024 * 1024 * 1024  # 10 GB

    from momentclip.web.routes import bp
    app.register_blueprint(bp)

    @app.errorhandler(400)
    def bad_request(error):
        return jsonify({"error": getattr(error, "description", "Bad request")}), 400

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(413)
    def request_entity_too_large(error):
        return jsonify({"error": "File too large"}), 413

    @app.errorhandler(500)
    def internal_error(error):
        return jsonify({"error": "Internal server error"}), 500

    return app
