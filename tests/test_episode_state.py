from datetime import timedelta

from sleepguard.services.bio_models import DetectedAnomaly, Trigger
from sleepguard.services.episode_state import (
    EpisodeAction,
    EpisodePhase,
    EpisodeStateMachine,
)

from conftest import BASE_TIME


def _at(seconds: float):
    return BASE_TIME + timedelta(seconds=seconds)


def _anomaly(seconds: float, trigger: Trigger = Trigger.HR_SPIKE) -> DetectedAnomaly:
    return DetectedAnomaly(trigger=trigger, severity=0.7, at=_at(seconds))


def _machine() -> EpisodeStateMachine:
    return EpisodeStateMachine(cooldown_period=timedelta(minutes=10), recovery_window=timedelta(minutes=2))


def test_first_anomaly_opens_episode():
    sm = _machine()

    transition = sm.on_anomaly(_anomaly(0))

    assert transition.action == EpisodeAction.DISTRESS
    assert sm.phase == EpisodePhase.SUPPRESSED
    assert sm.state.last_cue_at == _at(0)


def test_normalized_while_idle_is_noop():
    sm = _machine()

    assert sm.on_normalized(_at(0)).action == EpisodeAction.NOOP
    assert sm.state.recovery_streak_start is None


def test_anomaly_inside_cooldown_is_suppressed():
    sm = _machine()
    sm.on_anomaly(_anomaly(0))

    transition = sm.on_anomaly(_anomaly(599))

    assert transition.action == EpisodeAction.SUPPRESSED
    assert sm.state.last_cue_at == _at(0)


def test_cooldown_boundary_is_exclusive():
    sm = _machine()
    sm.on_anomaly(_anomaly(0))

    assert sm.in_cooldown(_at(599.9))
    assert not sm.in_cooldown(_at(600))
    assert sm.on_anomaly(_anomaly(600)).action == EpisodeAction.DISTRESS
    assert sm.state.last_cue_at == _at(600)


def test_cooldown_remaining():
    sm = _machine()
    assert sm.cooldown_remaining(_at(0)) is None

    sm.on_anomaly(_anomaly(0))

    assert sm.cooldown_remaining(_at(60)) == timedelta(minutes=9)
    assert sm.cooldown_remaining(_at(600)) is None


def test_streak_reaches_recovery_window():
    # Given: an open episode
    sm = _machine()
    sm.on_anomaly(_anomaly(0))

    # When: normalized samples arrive for two minutes
    first = sm.on_normalized(_at(10))
    middle = sm.on_normalized(_at(70))
    last = sm.on_normalized(_at(130))

    # Then: the streak starts on the first one and closes the episode on the last
    assert first.action == EpisodeAction.STREAK_EXTENDED
    assert first.phase == EpisodePhase.RECOVERING
    assert middle.stabilized_for == timedelta(seconds=60)
    assert last.action == EpisodeAction.RECOVERED
    assert last.stabilized_for == timedelta(minutes=2)
    assert sm.phase == EpisodePhase.IDLE
    assert sm.state.recovery_streak_start is None


def test_recovered_fires_once():
    sm = _machine()
    sm.on_anomaly(_anomaly(0))
    sm.on_normalized(_at(10))
    sm.on_normalized(_at(130))

    assert sm.on_normalized(_at(145)).action == EpisodeAction.NOOP


def test_anomaly_in_cooldown_breaks_streak():
    sm = _machine()
    sm.on_anomaly(_anomaly(0))
    sm.on_normalized(_at(10))

    transition = sm.on_anomaly(_anomaly(20, Trigger.MOTION_SPIKE))

    assert transition.action == EpisodeAction.SUPPRESSED
    assert transition.phase == EpisodePhase.SUPPRESSED
    assert sm.state.recovery_streak_start is None

    sm.on_normalized(_at(30))
    assert sm.state.recovery_streak_start == _at(30)
    assert sm.on_normalized(_at(140)).action == EpisodeAction.STREAK_EXTENDED
    assert sm.on_normalized(_at(150)).action == EpisodeAction.RECOVERED


def test_last_cue_survives_recovery():
    sm = _machine()
    sm.on_anomaly(_anomaly(0))
    sm.on_normalized(_at(10))
    sm.on_normalized(_at(130))

    assert sm.on_anomaly(_anomaly(200)).action == EpisodeAction.SUPPRESSED
    assert sm.phase == EpisodePhase.IDLE


def test_anomaly_after_cooldown_restarts_episode_mid_recovery():
    sm = _machine()
    sm.on_anomaly(_anomaly(0))
    sm.on_normalized(_at(590))

    transition = sm.on_anomaly(_anomaly(620))

    assert transition.action == EpisodeAction.DISTRESS
    assert sm.phase == EpisodePhase.SUPPRESSED
    assert sm.state.recovery_streak_start is None


def test_reset():
    sm = _machine()
    sm.on_anomaly(_anomaly(0))
    sm.reset()

    assert sm.phase == EpisodePhase.IDLE
    assert sm.state.last_cue_at is None
