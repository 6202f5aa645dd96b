import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

dotenv_path = os.path.join(PROJECT_ROOT, ".env")
if os.path.exists(dotenv_path):
    load_dotenv(dotenv_path)


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return int(raw)


@dataclass(frozen=True)
class Settings:
    cron_secret: Optional[str] = None
    timezone: str = "Asia/Seoul"
    business_day_start_hour: int = 6
    signup_bonus: int = 500
    referral_inviter_points: int = 500
    referral_invitee_points: int = 300
    daily_reward_top_n: int = 10
    ranking_cache_size: int = 256
    log_level: str = "INFO"
    log_json: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            cron_secret=os.getenv("CRON_SECRET") or None,
            timezone=os.getenv("TIMEZONE", "Asia/Seoul"),
            business_day_start_hour=_int_env("BUSINESS_DAY_START_HOUR", 6),
            signup_bonus=_int_env("SIGNUP_BONUS", 500),
            referral_inviter_points=_int_env("REFERRAL_INVITER_POINTS", 500),
            referral_invitee_points=_int_env("REFERRAL_INVITEE_POINTS", 300),
            daily_reward_top_n=_int_env("DAILY_REWARD_TOP_N", 10),
            ranking_cache_size=_int_env("RANKING_CACHE_SIZE", 256),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_json=os.getenv("LOG_JSON", "false").lower() in ("1", "true", "yes"),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
