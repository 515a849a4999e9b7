"""Utility modules for OpsWatch."""
from utils.logger import setup_logging
