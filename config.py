from pathlib import Path
from dotenv import load_dotenv
import os

load_dotenv()

BASE_DIR = Path(__file__).parent

# Data directory (gitignored)
DATA_DIR = BASE_DIR / "data"
DATA_DIR.mkdir(exist_ok=True)

# Database
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{DATA_DIR}/scores.db")

# Scoring sweep cadence
SCORING_INTERVAL_HOURS: int = int(os.getenv("SCORING_INTERVAL_HOURS", "1"))
SCORE_ON_STARTUP: bool = os.getenv("SCORE_ON_STARTUP", "true").strip().lower() == "true"

# Analytics
ANALYTICS_WINDOW_DAYS: int = int(os.getenv("ANALYTICS_WINDOW_DAYS", "30"))
# Flat environmental multipliers until a weather/events feed is wired in
WEATHER_DELAY_FACTOR: float = float(os.getenv("WEATHER_DELAY_FACTOR", "1.1"))
WEATHER_DEMAND_FACTOR: float = float(os.getenv("WEATHER_DEMAND_FACTOR", "1.0"))
EVENT_DEMAND_FACTOR: float = float(os.getenv("EVENT_DEMAND_FACTOR", "1.0"))

# API
API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
API_PORT: int = int(os.getenv("API_PORT", "8000"))
ADMIN_API_KEY: str = os.getenv("ADMIN_API_KEY", "")  # empty → recalculation endpoints open
CORS_ORIGINS: list[str] = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",")
    if origin.strip()
]
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
