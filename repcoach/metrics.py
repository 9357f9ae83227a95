"""
Stateless training metrics: e1RM, least-squares trend, ACWR, plateau check.
"""

from datetime import datetime, timedelta

from repcoach.exercise_normalizer import coerce_finite_non_negative


DAY_MS = 24 * 60 * 60 * 1000

ACWR_ACUTE_DAYS = 7
ACWR_CHRONIC_DAYS = 28
ACWR_HIGH = 1.3
ACWR_LOW = 0.8

ACWR_MESSAGES = {
    "unknown": "Not enough history for ACWR.",
    "high": (
        "Your recent load spiked above your 4-week baseline (ACWR > 1.3). "
        "Watch recovery and consider tapering."
    ),
    "low": (
        "Your recent load is below your 4-week baseline (ACWR < 0.8). "
        "You may be under-stimulating this pattern."
    ),
    "optimal": "Your recent load is in an optimal range vs baseline (ACWR 0.8-1.3).",
}

PLATEAU_SESSIONS = 4
PLATEAU_BAND = 0.02
PLATEAU_MESSAGE = (
    "e1RM steady across recent sessions. Consider a deload or a 5x5 block for new stimulus."
)

TREND_MIN_POINTS = 3
TREND_UP = 0.5
TREND_DOWN = -0.3


def e1rm(weight, reps):
    """
    Estimated one-rep max via the Epley formula ``w * (1 + r / 30)``.

    Returns 0.0 (never a real estimate) when weight or reps is not positive.
    """
    w = coerce_finite_non_negative(weight)
    r = coerce_finite_non_negative(reps)
    if w <= 0 or r <= 0:
        return 0.0
    return w * (1 + r / 30.0)


def day_key(ts_ms):
    """Local calendar day for a millisecond timestamp; out-of-range values read as missing."""
    try:
        return datetime.fromtimestamp(coerce_finite_non_negative(ts_ms) / 1000.0).date()
    except (OverflowError, OSError, ValueError):
        return datetime.fromtimestamp(0).date()


def day_offset(ts_ms, now_ms):
    """Whole days between the local day of ``ts_ms`` and the local day of ``now_ms``."""
    return (day_key(ts_ms) - day_key(now_ms)).days


def linear_regression(points):
    """
    Ordinary least squares over ``[{"x": ..., "y": ...}]``.

    Returns:
        dict with slope, intercept, r2. Fewer than two points gives all zeros.
    """
    n = len(points or [])
    if n < 2:
        return {"slope": 0.0, "intercept": 0.0, "r2": 0.0}

    xs = [float(p["x"]) for p in points]
    ys = [float(p["y"]) for p in points]
    sum_x = sum(xs)
    sum_y = sum(ys)
    sum_xy = sum(x * y for x, y in zip(xs, ys))
    sum_xx = sum(x * x for x in xs)

    denom = (n * sum_xx - sum_x * sum_x) or 1.0
    slope = (n * sum_xy - sum_x * sum_y) / denom
    intercept = (sum_y - slope * sum_x) / n

    mean_y = sum_y / n
    ss_tot = sum((y - mean_y) ** 2 for y in ys)
    ss_res = sum((y - (slope * x + intercept)) ** 2 for x, y in zip(xs, ys))
    r2 = 1 - ss_res / ss_tot if ss_tot else 0.0
    return {"slope": slope, "intercept": intercept, "r2": r2}


def compute_acwr(by_day_volume, today_ms):
    """
    Acute:chronic workload ratio over a 35-day trailing window.

    Args:
        by_day_volume: mapping of ``datetime.date`` -> volume
        today_ms: "today" as a millisecond timestamp

    Returns:
        dict with ratio (None when unknown), acuteAvg, chronicAvg, status, message
    """
    today = day_key(today_ms)
    window = ACWR_ACUTE_DAYS + ACWR_CHRONIC_DAYS
    values = []
    for offset in range(window - 1, -1, -1):
        day = today - timedelta(days=offset)
        values.append(coerce_finite_non_negative((by_day_volume or {}).get(day, 0)))

    acute_avg = sum(values[-ACWR_ACUTE_DAYS:]) / ACWR_ACUTE_DAYS
    chronic_avg = sum(values[:ACWR_CHRONIC_DAYS]) / ACWR_CHRONIC_DAYS

    if chronic_avg <= 0:
        return {
            "ratio": None,
            "acuteAvg": acute_avg,
            "chronicAvg": 0.0,
            "status": "unknown",
            "message": ACWR_MESSAGES["unknown"],
        }

    ratio = acute_avg / chronic_avg
    if ratio > ACWR_HIGH:
        status = "high"
    elif ratio < ACWR_LOW:
        status = "low"
    else:
        status = "optimal"
    return {
        "ratio": ratio,
        "acuteAvg": acute_avg,
        "chronicAvg": chronic_avg,
        "status": status,
        "message": ACWR_MESSAGES[status],
    }


def detect_plateau(best_e1rms):
    """
    Flag a plateau when the last four session bests sit inside a 2% band.

    Needs at least one session before the window; returns None otherwise.
    """
    values = [coerce_finite_non_negative(v) for v in (best_e1rms or [])]
    if len(values) < PLATEAU_SESSIONS + 1:
        return None

    recent = values[-PLATEAU_SESSIONS:]
    high = max(recent)
    low = min(recent)
    if high > 0 and (high - low) / high < PLATEAU_BAND:
        return {
            "sessions": PLATEAU_SESSIONS,
            "band": (high - low) / high,
            "message": PLATEAU_MESSAGE,
        }
    return None


def e1rm_trend(points, units="lb"):
    """Regress e1RM points and describe the weekly slope.

    With fewer than three points the trend is reported as not enough data.
    """
    ordered = sorted(points or [], key=lambda p: p["x"])
    if len(ordered) < TREND_MIN_POINTS:
        return {
            "slopePerWeek": 0.0,
            "r2": 0.0,
            "points": len(ordered),
            "status": "unknown",
            "message": None,
        }

    reg = linear_regression(ordered)
    slope_per_week = reg["slope"] * 7
    if slope_per_week > TREND_UP:
        status = "up"
        message = f"Strength trending up ~{slope_per_week:.1f} {units}/week."
    elif slope_per_week < TREND_DOWN:
        status = "down"
        message = f"Strength trending down ~{abs(slope_per_week):.1f} {units}/week."
    else:
        status = "flat"
        message = "Strength trend is flat. Aim for progressive overload."
    return {
        "slopePerWeek": slope_per_week,
        "r2": reg["r2"],
        "points": len(ordered),
        "status": status,
        "message": message,
    }


def today_ms():
    return int(datetime.now().timestamp() * 1000)
