from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from .models.quiz import Difficulty


DEFAULT_MODEL = "google/gemini-2.5-flash"
FALLBACK_MODEL = "google/gemini-2.5-flash-lite"


@dataclass
class Config:
    discord_token: str
    openrouter_api_key: str
    default_model: str = DEFAULT_MODEL
    fallback_model: str = FALLBACK_MODEL
    openrouter_site_url: str | None = None
    openrouter_app_name: str | None = None
    log_level: str = "INFO"
    # Game defaults
    default_difficulty: Difficulty = Difficulty.MEDIUM
    question_count: int = 20
    # Minimum gap between scoreboard edits; turn changes always refresh
    status_refresh_seconds: float = 5.0
    # Fast command sync to specific guilds (comma-separated IDs)
    command_guild_ids: list[int] | None = None


def _parse_guild_ids(raw: str) -> list[int] | None:
    parsed: list[int] = []
    for part in raw.replace(";", ",").split(","):
        p = part.strip()
        if not p:
            continue
        try:
            parsed.append(int(p))
        except ValueError:
            # ignore malformed entries
            continue
    return parsed or None


def _int_env(name: str, default: int, minimum: int = 1) -> int:
    try:
        value = int(os.getenv(name, "").strip() or default)
    except ValueError:
        return default
    return value if value >= minimum else default


def _float_env(name: str, default: float) -> float:
    try:
        value = float(os.getenv(name, "").strip() or default)
    except ValueError:
        return default
    return value if value >= 0 else default


def load_config() -> Config:
    load_dotenv(override=False)

    discord_token = os.getenv("DISCORD_TOKEN", "").strip()
    openrouter_api_key = os.getenv("OPENROUTER_API_KEY", "").strip()

    if not discord_token:
        raise RuntimeError("DISCORD_TOKEN is required in environment or .env")
    if not openrouter_api_key:
        raise RuntimeError("OPENROUTER_API_KEY is required in environment or .env")

    log_level = os.getenv("LOG_LEVEL", "").strip() or "INFO"

    return Config(
        discord_token=discord_token,
        openrouter_api_key=openrouter_api_key,
        default_model=os.getenv("DEFAULT_MODEL", "").strip() or DEFAULT_MODEL,
        fallback_model=os.getenv("FALLBACK_MODEL", "").strip() or FALLBACK_MODEL,
        openrouter_site_url=os.getenv("OPENROUTER_SITE_URL") or None,
        openrouter_app_name=os.getenv("OPENROUTER_APP_NAME") or None,
        log_level=log_level,
        default_difficulty=Difficulty.parse(os.getenv("CHASER_DEFAULT_DIFFICULTY"), default=Difficulty.MEDIUM),
        question_count=_int_env("CHASER_QUESTION_COUNT", 20, minimum=2),
        status_refresh_seconds=_float_env("CHASER_STATUS_REFRESH_SECONDS", 5.0),
        command_guild_ids=_parse_guild_ids(os.getenv("COMMAND_GUILD_IDS", "").strip()),
    )
