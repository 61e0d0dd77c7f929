from __future__ import annotations

from .bmc import WriteError


class SafetyManager:
    """Enforces the fail-safe when the temperature can no longer be read."""
    def __init__(self, config, bmc, logger):
        self.config = config
        self.bmc = bmc
        self.logger = logger

    def force_max_speed(self) -> bool:
        """Pin fans to `max_speed`. Returns True if the BMC accepted it."""
        max_speed = self.config.max_speed
        self.logger.error(f"Temperature unknown, forcing fans to {max_speed}% for safety")
        try:
            self.bmc.apply_fan_speed(max_speed)
        except WriteError as e:
            self.logger.error(f"Failed to force fail-safe fan speed: {e}")
            return False
        return True
