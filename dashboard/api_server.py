"""
Directory Gateway API Server.

Entry point that creates the Flask app via the application factory.

Usage:
    python -m dashboard.api_server
    gunicorn -c dashboard/gunicorn.conf.py dashboard.api_server:app
"""

import sys
from pathlib import Path

# Ensure project root is on the path
sys.path.insert(0, str(Path(__file__).parent.parent))  # Project root

from dashboard.app import create_app

# Create the application
app = create_app()


if __name__ == '__main__':
    import logging
    from config.settings import get_settings

    settings = get_settings()
    logger = logging.getLogger('dashboard')

    logger.info(f"Starting Directory Gateway API on {settings.host}:{settings.port}...")
    logger.info(f"  - Log format: {settings.log_format}")
    logger.info(f"  - Log level: {settings.log_level}")
    logger.info(f"  - Data dir: {settings.storage.data_dir}")

    app.run(host=settings.host, port=settings.port, debug=False, use_reloader=False)  # nosec B104
