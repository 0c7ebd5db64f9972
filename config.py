"""Global configuration for MindScribe."""

import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

# Application data (diary database, notification platform state)
DATA_DIR = Path(os.getenv("MINDSCRIBE_DATA_DIR", Path(os.getenv("LOCALAPPDATA", ".")) / "mindscribe"))
DATA_DIR.mkdir(parents=True, exist_ok=True)

# Logging
LOG_DIR = Path(os.getenv("MINDSCRIBE_LOG_DIR", DATA_DIR / "logs"))
LOG_DIR.mkdir(parents=True, exist_ok=True)

LOG_LEVEL = os.getenv("MINDSCRIBE_LOG_LEVEL", "INFO").upper()
