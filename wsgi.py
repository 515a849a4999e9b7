"""WSGI entry point for production deployment (e.g. gunicorn wsgi:app)."""
import sys
import os
import logging
from pathlib import Path

# Ensure project root is on path
sys.path.insert(0, str(Path(__file__).parent))

# Ensure data directory exists
Path("data").mkdir(exist_ok=True)

from config import load_config
from utils.logger import setup_logging
from monitor.wiring import build_components
from web.app import create_app

logger = logging.getLogger("opswatch.wsgi")

config = load_config(os.environ.get("OPSWATCH_CONFIG"))
setup_logging(config["logging"]["level"], config["logging"].get("file"))

components = build_components(config, console=False)
app = create_app(config, components)

# The scheduler's first cycle runs immediately, so the API has data on the first request
components["scheduler"].start()
logger.info(f"OpsWatch API ready ({len(components['collector'].providers)} providers)")
