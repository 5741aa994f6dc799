"""Mapping from the user-facing 30-100 quality score to ffmpeg's ``-q:a`` scale.

ffmpeg's VBR audio quality runs the other way round: lower values mean higher
fidelity. The thresholds below are fixed; range checks happen where the score
is entered (prompt / CLI), see ``validate_quality_percent``.
"""

QUALITY_MIN = 30
QUALITY_MAX = 100
QUALITY_DEFAULT = 70

# (minimum percent, ffmpeg -q:a value), checked top-down
_QUALITY_STEPS = (
    (90, "0"),
    (75, "2"),
    (60, "3"),
    (50, "4"),
    (40, "5"),
)
_QUALITY_FLOOR = "6"


def percent_to_ffmpeg_quality(percent: int) -> str:
    """Returns the ffmpeg ``-q:a`` value for a quality percentage."""
    for threshold, value in _QUALITY_STEPS:
        if percent >= threshold:
            return value
    return _QUALITY_FLOOR


def validate_quality_percent(percent: int) -> int:
    if not QUALITY_MIN <= percent <= QUALITY_MAX:
        raise ValueError(f"Quality must be {QUALITY_MIN}-{QUALITY_MAX}, got {percent}")
    return percent
