"""
Main entry point for initializr-mirror (development server).

Production runs under gunicorn: `gunicorn -c gunicorn_config.py initializr_mirror:app`.
"""
import os
import sys
import logging
from initializr_mirror import create_app

app = create_app()

if __name__ == '__main__':
    port = int(os.environ.get('PORT', 8080))

    # Enable debug mode by default for local development
    # Set FLASK_ENV=production to disable debug mode
    debug = os.environ.get('FLASK_ENV') != 'production'

    # For local development, use localhost; for production, use 0.0.0.0
    host = '127.0.0.1' if debug else '0.0.0.0'

    logging.basicConfig(
        level=os.environ.get('LOG_LEVEL', 'INFO').upper(),
        stream=sys.stdout,
        format='%(asctime)s %(filename)s:%(lineno)d: %(levelname)s %(message)s',
    )
    logger = logging.getLogger(__name__)
    logger.info("Server Start on http://%s:%s -> %s", host, port, app.config['UPSTREAM_URL'])
    logger.info("Debug mode: %s", "ON" if debug else "OFF")

    app.run(host=host, port=port, debug=debug)

    logger.info("Bye")
