"""
FitPoints service entry point.
"""
import os
import sys
import logging

from fitpoints import create_app
from fitpoints.utils.logging_config import setup_logging

setup_logging()
logger = logging.getLogger('fitpoints.run')

config_name = os.getenv('FLASK_ENV', 'production')
logger.info(f"Starting FitPoints (config: {config_name}, "
            f"DATABASE_URL: {'set' if os.getenv('DATABASE_URL') else 'NOT SET'})")

try:
    app = create_app(config_name)
except RuntimeError as e:
    logger.critical(f"FATAL ERROR during app creation: {e}")
    sys.exit(1)

logger.info(f"App created, {len(list(app.url_map.iter_rules()))} routes")

if __name__ == '__main__':
    app.run(
        host='0.0.0.0',
        port=int(os.getenv('PORT', 5000)),
        debug=os.getenv('FLASK_ENV') == 'development'
    )
