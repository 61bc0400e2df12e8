"""Configuration settings for the fraud detector."""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Storage
DEFAULT_DB_PATH = Path(__file__).parent.parent / "fraud_alerts.db"
FRAUD_DB_PATH: Path = Path(os.getenv("FRAUD_DB_PATH", str(DEFAULT_DB_PATH)))

# Live dashboard webhook (alerts are only logged when unset)
DASHBOARD_WEBHOOK_URL: str | None = os.getenv("DASHBOARD_WEBHOOK_URL")

# HTTP settings
REQUEST_TIMEOUT_SECONDS: int = int(os.getenv("REQUEST_TIMEOUT_SECONDS", "10"))

# Escalate a seller once this many genuine listing alerts are attributed to them
ESCALATION_THRESHOLD: int = int(os.getenv("ESCALATION_THRESHOLD", "2"))
