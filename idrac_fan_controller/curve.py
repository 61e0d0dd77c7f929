from __future__ import annotations

import math


def _is_flat(cfg) -> bool:
    return cfg.max_speed == cfg.min_speed


def speed_for_temperature(temp: float, cfg) -> int:
    """Map a temperature to a fan percent on the quadratic curve.

    Below `temp_low` the fans idle at `min_speed`, at or above `temp_high`
    they run at `max_speed`. In between the speed follows the square of the
    position inside the band, so the curve stays quiet near the low
    threshold and ramps hard near the high one. Result is truncated.
    """
    if _is_flat(cfg):
        return cfg.min_speed
    if temp < cfg.temp_low:
        return cfg.min_speed
    if temp >= cfg.temp_high:
        return cfg.max_speed

    t = (temp - cfg.temp_low) / (cfg.temp_high - cfg.temp_low)
    return int(cfg.min_speed + (cfg.max_speed - cfg.min_speed) * t * t)


def temperature_for_speed(speed: float, cfg) -> float:
    """Inverse of `speed_for_temperature`: the temperature producing `speed`."""
    if _is_flat(cfg):
        return float(cfg.temp_low)
    if speed <= cfg.min_speed:
        return float(cfg.temp_low)
    if speed >= cfg.max_speed:
        return float(cfg.temp_high)

    s = (speed - cfg.min_speed) / (cfg.max_speed - cfg.min_speed)
    return cfg.temp_low + (cfg.temp_high - cfg.temp_low) * math.sqrt(s)
