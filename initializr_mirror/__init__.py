"""
initializr-mirror - reverse proxy for Spring Initializr that rewrites its home page
"""
from flask import Flask
import os

from initializr_mirror.features.proxy.services.mutations import RewriteRules


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def create_app(overrides=None):
    """Create and configure the Flask application"""
    app = Flask(__name__, static_folder=None)

    # Configuration
    app.config['UPSTREAM_URL'] = os.environ.get('UPSTREAM_URL', 'https://start.spring.io/')
    # Sent upstream on every request so the upstream operator can find us
    app.config['USER_AGENT_MARKER'] = os.environ.get('USER_AGENT_MARKER', 'https://start.springboot.io/about')
    app.config['UPSTREAM_TIMEOUT'] = (
        float(os.environ.get('UPSTREAM_CONNECT_TIMEOUT', 10)),
        float(os.environ.get('UPSTREAM_READ_TIMEOUT', 60)),
    )
    app.config['REWRITE_MAX_BYTES'] = int(os.environ.get('REWRITE_MAX_BYTES', 16 * 1024 * 1024))
    app.config['REWRITE_RULES'] = RewriteRules(
        remove_body_scripts=_env_flag('REWRITE_REMOVE_BODY_SCRIPTS'),
    )

    if overrides:
        app.config.update(overrides)

    # Ensure Flask knows it's behind a proxy (for HTTPS detection)
    # This is important when running behind nginx with SSL termination
    from werkzeug.middleware.proxy_fix import ProxyFix
    app.wsgi_app = ProxyFix(
        app.wsgi_app,
        x_for=1,
        x_proto=1,
        x_host=1,
        x_port=1,
        x_prefix=1
    )

    # Register blueprints
    # IMPORTANT: Register local routes BEFORE the proxy catch-all
    from initializr_mirror.features.site.blueprint import bp as site_bp
    from initializr_mirror.features.proxy.blueprint import bp as proxy_bp
    app.register_blueprint(site_bp)   # /about, /robots.txt
    app.register_blueprint(proxy_bp)  # everything else

    return app

# Create app instance for WSGI servers (gunicorn, etc.)
# This allows gunicorn to load 'initializr_mirror:app'
app = create_app()
