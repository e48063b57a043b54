"""Audio intervention port and an HTTP client for the bedside speaker API."""

import asyncio
import aiohttp
import logging
from typing import Protocol

logger = logging.getLogger(__name__)


class AudioInterventionError(Exception):
    """Raised when the speaker could not start or stop the calming cue."""


# Used by: type hint protocol for NightTerrorProtocol.start (not instantiated directly)
class CalmingAudio(Protocol):
    async def play_low_volume_cue(self) -> None:
        """Start the calming cue. Raises on failure."""
        ...

    async def stop(self) -> None:
        ...


# Used by: main.py lifespan, api/night_terror.py (POST /start)
class HttpCalmingAudio:
    """Plays the cue through the speaker's HTTP API."""

    PLAY_ENDPOINT = "/cue/play"
    STOP_ENDPOINT = "/cue/stop"

    def __init__(self, base_url: str, volume: float = 0.2, timeout_seconds: float = 5):
        self.base_url = base_url.rstrip("/")
        self.volume = volume
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    async def play_low_volume_cue(self) -> None:
        await self._post(self.PLAY_ENDPOINT, {"volume": self.volume})
        logger.info(f"Calming cue started at volume {self.volume}")

    async def stop(self) -> None:
        await self._post(self.STOP_ENDPOINT, {})
        logger.debug("Calming cue stopped")

    async def _post(self, endpoint: str, payload: dict) -> None:
        url = self.base_url + endpoint
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(url, json=payload) as response:
                    if response.status >= 300:
                        body = await response.text()
                        raise AudioInterventionError(
                            f"Speaker {endpoint} returned status {response.status}: {body[:200]}"
                        )
        except aiohttp.ClientError as e:
            raise AudioInterventionError(f"Network error calling speaker {endpoint}: {e}") from e
        except asyncio.TimeoutError as e:
            raise AudioInterventionError(
                f"Speaker {endpoint} timed out after {self.timeout.total:g}s"
            ) from e
