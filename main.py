"""WSGI entrypoint for the recipe feed application.

The Flask development server is intentionally not started from this module so
that containerized deployments rely on Gunicorn. Local development can still
use ``flask --app main run`` which imports the ``app`` object defined below.
"""

import logging
import os

from recipe_feed import create_app

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = create_app()


__all__ = ["app"]
