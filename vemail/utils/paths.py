"""Centralized path definitions for the Vemail client.

This module provides a single source of truth for all on-disk locations.
Set ``VEMAIL_HOME`` to relocate everything (tests point it at a temp dir).
"""

import os
from pathlib import Path

# Base application directory
VEMAIL_DIR = Path(os.environ.get("VEMAIL_HOME") or Path.home() / ".vemail")

# Subdirectories
LOGS_DIR = VEMAIL_DIR / "logs"

# Specific files
CONFIG_PATH = VEMAIL_DIR / "config.json"
ACCOUNT_CACHE_PATH = VEMAIL_DIR / "accounts.json"
