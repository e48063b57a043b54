"""App settings: loaded from environment variables with defaults."""

import os
from dotenv import load_dotenv
from sleepguard.core.constants import (
    NIGHT_TERROR_SLIDING_WINDOW_MINUTES,
    NIGHT_TERROR_MIN_SAMPLES_FOR_BASELINE,
    NIGHT_TERROR_COOLDOWN_MINUTES,
    NIGHT_TERROR_RECOVERY_MINUTES,
    AUDIO_CUE_TIMEOUT_SECONDS,
    AUDIO_CUE_VOLUME,
    SSE_KEEPALIVE_SECONDS as _DEFAULT_SSE_KEEPALIVE,
)

load_dotenv()


class Settings:
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8000"))

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Bedside speaker that plays the calming cue
    AUDIO_API_BASE_URL: str = os.getenv("AUDIO_API_BASE_URL", "http://127.0.0.1:8001")
    AUDIO_TIMEOUT_SECONDS: float = float(
        os.getenv("AUDIO_TIMEOUT_SECONDS", str(AUDIO_CUE_TIMEOUT_SECONDS))
    )
    AUDIO_CUE_VOLUME: float = float(os.getenv("AUDIO_CUE_VOLUME", str(AUDIO_CUE_VOLUME)))

    # Defaults from constants.py; overridable via env
    NIGHT_TERROR_SLIDING_WINDOW_MINUTES: int = int(
        os.getenv("NIGHT_TERROR_SLIDING_WINDOW_MINUTES", str(NIGHT_TERROR_SLIDING_WINDOW_MINUTES))
    )
    NIGHT_TERROR_COOLDOWN_MINUTES: int = int(
        os.getenv("NIGHT_TERROR_COOLDOWN_MINUTES", str(NIGHT_TERROR_COOLDOWN_MINUTES))
    )
    NIGHT_TERROR_RECOVERY_MINUTES: int = int(
        os.getenv("NIGHT_TERROR_RECOVERY_MINUTES", str(NIGHT_TERROR_RECOVERY_MINUTES))
    )
    NIGHT_TERROR_MIN_SAMPLES_FOR_BASELINE: int = int(
        os.getenv("NIGHT_TERROR_MIN_SAMPLES_FOR_BASELINE", str(NIGHT_TERROR_MIN_SAMPLES_FOR_BASELINE))
    )

    SSE_KEEPALIVE_SECONDS: int = int(os.getenv("SSE_KEEPALIVE_SECONDS", str(_DEFAULT_SSE_KEEPALIVE)))


settings = Settings()
