"""
Configuration for the Pediatric Growth Standards engine.
"""
import os

# ── Reference data ────────────────────────────────────────────
# Optional full WHO table (one row per day); bundled monthly tables otherwise
WHO_REFERENCE_CSV = os.environ.get("WHO_REFERENCE_CSV", "")

# ── Server ────────────────────────────────────────────────────
PORT = int(os.environ.get("PORT", 8000))
HOST = os.environ.get("HOST", "0.0.0.0")
DEBUG = os.environ.get("DEBUG", "false").lower() == "true"
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# ── Auth (optional) ───────────────────────────────────────────
AUTH_ENABLED = os.environ.get("AUTH_ENABLED", "false").lower() == "true"
AUTH_USERNAME = os.environ.get("AUTH_USERNAME", "admin")
AUTH_PASSWORD = os.environ.get("AUTH_PASSWORD", "changeme")

# ── Calculator ────────────────────────────────────────────────
# Lean output drops reference curve values from every z-score result
FULL_DIAGNOSTICS = os.environ.get("FULL_DIAGNOSTICS", "true").lower() == "true"

MIN_AGE_DAYS = 0
MAX_AGE_DAYS = 1856  # 5 years + 1 month buffer

L_ZERO_THRESHOLD = 1e-6
Z_SCORE_CLAMP = 10.0
PERCENTILE_TAIL_Z = 6.0
PERCENTILE_MIN = 0.01
PERCENTILE_MAX = 99.99

# WHO mean month/year lengths
DAYS_PER_WEEK = 7
DAYS_PER_MONTH = 30.44
DAYS_PER_YEAR = 365.25
DAYS_PER_MONTH_WHO_TABLE = 30.4375  # month -> day conversion of the LMS tables

# ── Trends, velocity & projection ─────────────────────────────
VELOCITY_DECIMALS = 4
VELOCITY_WINDOW_MONTHS = 3

# (slow below, fast above) per month
VELOCITY_THRESHOLDS = {
    'Weight': (0.1, 0.5),    # kg/month
    'Height': (0.3, 1.0),    # cm/month
}

PROJECTION_RECENT_POINTS = 3
PROJECTION_STEP_MONTHS = 3
PROJECTION_LOOKBACK_DAYS = 365
PROJECTION_BASE_CONFIDENCE = 0.7
PROJECTION_CONFIDENCE_DECAY = 0.05
PROJECTION_MIN_CONFIDENCE = 0.3

# ── Alerts ────────────────────────────────────────────────────
ALERT_Z_CRITICAL_LOW = -3.0
ALERT_Z_WARNING_HIGH = 3.0
ALERT_PERCENTILE_DROP = 25.0

# ── Visit assessment ──────────────────────────────────────────
GROWTH_STATUS_LOW_Z = -2.0        # underweight (weight) / stunted (height)
GROWTH_STATUS_OVERWEIGHT_Z = 2.0
GROWTH_STATUS_OBESE_Z = 3.0

# ── Charts ────────────────────────────────────────────────────
DEFAULT_PERCENTILE_LINES = [3, 15, 50, 85, 97]
PATIENT_CHART_MATCH_DAYS = 15
