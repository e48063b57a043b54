"""Detection thresholds, protocol timing defaults, and app-level tuning constants."""

# ── SLEEP WINDOWING ──────────────────────────────────────────────────────────
# No clinical source, engineering choices tuned on scripted overnight sessions.
# Baseline is the last 10 minutes of NREM samples; detection stays off until
# at least 10 NREM samples are held.
NIGHT_TERROR_SLIDING_WINDOW_MINUTES = 10
NIGHT_TERROR_MIN_SAMPLES_FOR_BASELINE = 10

# ── INTERVENTION TIMING ─────────────────────────────────────────────────────
# No clinical source, app-level UX choices.
# Cooldown: minimum time between two calming cues.
# Recovery: how long metrics must stay normal before the episode is closed.
NIGHT_TERROR_COOLDOWN_MINUTES = 15
NIGHT_TERROR_RECOVERY_MINUTES = 5

# ── DETECTION THRESHOLDS ────────────────────────────────────────────────────
# HR spike: z-score against the rolling mean. When the baseline has no
# variance at all the z-score is undefined, so a plain ratio is used instead
# (1.5 x a 70 bpm baseline fires above 105 bpm).
HR_Z_SCORE_THRESHOLD = 2.0
HR_FLAT_BASELINE_RATIO = 1.5

# HRV drop as a fraction of the baseline mean (0.3 = 30% drop).
HRV_DROP_THRESHOLD = 0.3

# Motion spike as absolute excess over the baseline mean (unitless intensity).
MOTION_SPIKE_THRESHOLD = 0.8

# Variance below this is treated as a flat baseline.
FLAT_BASELINE_EPSILON = 1e-9

# ── AUDIO CUE ───────────────────────────────────────────────────────────────
# Fail fast if the bedside speaker doesn't answer; a missed cue is logged,
# monitoring keeps going.
AUDIO_CUE_TIMEOUT_SECONDS = 5.0
AUDIO_CUE_VOLUME = 0.2

# ── SSE ─────────────────────────────────────────────────────────────────────
SSE_KEEPALIVE_SECONDS = 15
# Undelivered events held per subscriber before the oldest are dropped.
EVENT_SUBSCRIPTION_MAX_PENDING = 256
