"""Global configuration for the fitness tracker client."""

import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

# Supabase
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY") or os.getenv("SUPABASE_KEY")

# HTTP
HTTP_TIMEOUT = float(os.getenv("FITNESS_HTTP_TIMEOUT", "30"))

# Device-local calendar used for water log dates and week boundaries
TIMEZONE = os.getenv("FITNESS_TIMEZONE", "Europe/Lisbon")

# Local device storage (auth session, reminder preferences, UI cache)
DATA_DIR = Path(os.getenv("LOCALAPPDATA", ".")) / "fitness-tracker"
LOCAL_STORE_DB = os.getenv("LOCAL_STORE_DB", str(DATA_DIR / "local_store.db"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_DIR = Path(os.getenv("LOG_DIR", str(DATA_DIR / "logs")))
LOG_DIR.mkdir(parents=True, exist_ok=True)
