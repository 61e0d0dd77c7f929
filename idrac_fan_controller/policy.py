from __future__ import annotations

from typing import Optional

from .curve import speed_for_temperature, temperature_for_speed


def should_recompute(new_temp: float, current_speed: Optional[int], cfg) -> bool:
    """Return True when `new_temp` left the hysteresis band of `current_speed`.

    The band is centred on the temperature that would have produced the
    current speed on the curve, not on the last observed reading. Its edges
    count as inside.
    """
    if current_speed is None:
        return True
    ref_temp = temperature_for_speed(current_speed, cfg)
    return new_temp < ref_temp - cfg.hysteresis or new_temp > ref_temp + cfg.hysteresis


class SpeedPolicy:
    """Decides the fan speed for a new temperature reading.

    Combines the hysteresis filter with the curve. Contains no I/O.
    """

    def __init__(self, config, logger):
        self.config = config
        self.logger = logger

    def target_speed(self, new_temp: float, current_speed: Optional[int]) -> Optional[int]:
        """Return the speed to apply, or None to hold `current_speed`."""
        if not should_recompute(new_temp, current_speed, self.config):
            ref_temp = temperature_for_speed(current_speed, self.config)
            self.logger.debug(
                f"Holding {current_speed}%: {new_temp:.1f}°C is within "
                f"±{self.config.hysteresis}°C of {ref_temp:.1f}°C"
            )
            return None

        speed = speed_for_temperature(new_temp, self.config)
        if current_speed is None:
            self.logger.debug(f"No speed applied yet, curve gives {speed}% for {new_temp:.1f}°C")
        else:
            self.logger.debug(f"Recomputed {current_speed}% -> {speed}% for {new_temp:.1f}°C")
        return speed
