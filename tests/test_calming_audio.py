import asyncio

import pytest
import pytest_asyncio
from aiohttp import test_utils, web

from sleepguard.services.calming_audio import AudioInterventionError, HttpCalmingAudio


@pytest.fixture
def received():
    return []


@pytest_asyncio.fixture
async def speaker(received):
    """Stand-in for the bedside speaker API."""

    async def play(request):
        received.append(("play", await request.json()))
        return web.json_response({"status": "playing"})

    async def stop(request):
        received.append(("stop", await request.json()))
        return web.json_response({"status": "stopped"})

    async def busy(request):
        return web.Response(status=503, text="speaker busy")

    async def slow(request):
        await asyncio.sleep(0.5)
        return web.json_response({"status": "playing"})

    app = web.Application()
    app.router.add_post("/cue/play", play)
    app.router.add_post("/cue/stop", stop)
    app.router.add_post("/busy/cue/play", busy)
    app.router.add_post("/slow/cue/play", slow)

    server = test_utils.TestServer(app)
    await server.start_server()
    yield server
    await server.close()


async def test_play_and_stop_post_to_speaker(speaker, received):
    audio = HttpCalmingAudio(base_url=str(speaker.make_url("/")), volume=0.2)

    await audio.play_low_volume_cue()
    await audio.stop()

    assert received == [("play", {"volume": 0.2}), ("stop", {})]


async def test_error_status_raises(speaker):
    audio = HttpCalmingAudio(base_url=str(speaker.make_url("/busy")))

    with pytest.raises(AudioInterventionError, match="503"):
        await audio.play_low_volume_cue()


async def test_unreachable_speaker_raises():
    audio = HttpCalmingAudio(base_url="http://127.0.0.1:1", timeout_seconds=1)

    with pytest.raises(AudioInterventionError):
        await audio.play_low_volume_cue()


async def test_speaker_timeout_raises(speaker):
    audio = HttpCalmingAudio(base_url=str(speaker.make_url("/slow")), timeout_seconds=0.1)

    with pytest.raises(AudioInterventionError):
        await audio.play_low_volume_cue()
