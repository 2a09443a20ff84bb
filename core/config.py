"""Runtime configuration.

Values come from environment variables, optionally loaded from a .env file
at the repository root.
"""

import os
from decimal import Decimal
from pathlib import Path

from dotenv import load_dotenv

REPO_ROOT = Path(__file__).resolve().parents[1]

env_path = REPO_ROOT / ".env"
if env_path.exists():
    load_dotenv(env_path)


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# =============================================================================
# Storage
# =============================================================================

DB_PATH = Path(os.getenv("DELIVERY_CONTROL_DB_PATH", str(REPO_ROOT / "delivery_control.db")))


# =============================================================================
# Reconciliation
# =============================================================================

DEFAULT_ALERT_THRESHOLD_PCT = Decimal(os.getenv("DEFAULT_ALERT_THRESHOLD_PCT", "5.00"))
CURRENCY_SYMBOL = os.getenv("CURRENCY_SYMBOL", "€")


# =============================================================================
# Logging
# =============================================================================

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_JSON = _env_bool("LOG_JSON")


# =============================================================================
# Temporal
# =============================================================================

TEMPORAL_ENDPOINT = os.getenv("TEMPORAL_ENDPOINT", "localhost:7233")
TEMPORAL_NAMESPACE = os.getenv("TEMPORAL_NAMESPACE", "default")
TEMPORAL_API_KEY = os.getenv("TEMPORAL_API_KEY")
TEMPORAL_CERT_PATH = os.getenv("TEMPORAL_CERT_PATH")
TASK_QUEUE = os.getenv("TEMPORAL_TASK_QUEUE", "delivery-control")
