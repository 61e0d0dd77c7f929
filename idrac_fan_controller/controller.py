#!/usr/bin/env python3
from __future__ import annotations

import enum
import logging
import signal
import sys
import time
from dataclasses import dataclass
from typing import Callable, Optional

from .bmc import BmcClient, IpmiToolClient, ReadError, WriteError
from .config import ControllerConfig
from .logging_utils import LOGGER_NAME
from .policy import SpeedPolicy
from .safety import SafetyManager


class LoopState(enum.Enum):
    SAMPLING = "sampling"
    DEGRADED = "degraded"
    APPLYING = "applying"


@dataclass
class ControllerState:
    """Mutable loop state. `None` means no speed applied / no reading yet."""
    current_speed: Optional[int] = None
    last_temperature: Optional[float] = None
    consecutive_errors: int = 0
    loop_state: LoopState = LoopState.SAMPLING


class FanController:
    """Closed loop that pins BMC fan speed to the temperature curve.

    Each cycle:
    - reads the hottest temperature via the `BmcClient`
    - asks `SpeedPolicy` whether the reading left the hysteresis band
    - applies the new speed through the `BmcClient`
    - after repeated read failures, lets `SafetyManager` force full speed

    Dependencies are injectable so tests can drive the loop with a fake BMC
    and a fake sleep.
    """

    def __init__(
        self,
        config: ControllerConfig,
        *,
        bmc: BmcClient | None = None,
        logger: logging.Logger | None = None,
        policy: SpeedPolicy | None = None,
        safety: SafetyManager | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.logger = logger or logging.getLogger(LOGGER_NAME)

        self.bmc = bmc or IpmiToolClient.from_config(config, self.logger)
        self.policy = policy or SpeedPolicy(config, self.logger)
        self.safety = safety or SafetyManager(config, self.bmc, self.logger)
        self._sleep = sleep

        self.state = ControllerState()

    def _signal_handler(self, signum, frame):
        """Handle SIGINT/SIGTERM by exiting; fans keep their last speed."""
        self.logger.info(f"Received signal {signum}, shutting down")
        sys.exit(0)

    def run_cycle(self) -> float:
        """Execute one control loop iteration.

        Returns the number of seconds to wait before the next one.
        """
        state = self.state
        state.loop_state = LoopState.SAMPLING
        try:
            temp = self.bmc.read_max_temperature()
        except ReadError as e:
            return self._handle_read_failure(e)

        state.consecutive_errors = 0
        if temp == state.last_temperature:
            self.logger.debug(f"Temperature unchanged at {temp:.1f}°C, fans at {state.current_speed}%")
            return self.config.check_interval

        self.logger.debug(f"Temperature is {temp:.1f}°C (previous {state.last_temperature})")
        target = self.policy.target_speed(temp, state.current_speed)
        if target is not None:
            self._apply(target, temp)
        state.last_temperature = temp
        return self.config.check_interval

    def _apply(self, speed: int, temp: float):
        state = self.state
        state.loop_state = LoopState.APPLYING
        try:
            self.bmc.apply_fan_speed(speed)
        except WriteError as e:
            self.logger.error(f"Failed to set fan speed to {speed}%: {e}")
        else:
            if state.current_speed is None:
                self.logger.info(f"Temperature {temp:.1f}°C: fan speed set to {speed}%")
            else:
                self.logger.info(f"Temperature {temp:.1f}°C: fan speed {state.current_speed}% -> {speed}%")
            state.current_speed = speed
        finally:
            state.loop_state = LoopState.SAMPLING

    def _handle_read_failure(self, error: ReadError) -> float:
        state = self.state
        limit = self.config.max_consecutive_errors
        state.consecutive_errors += 1
        self.logger.warning(f"Failed to read temperature ({state.consecutive_errors}/{limit}): {error}")
        if state.consecutive_errors < limit:
            return self.config.check_interval

        state.loop_state = LoopState.DEGRADED
        self.logger.error(
            f"{state.consecutive_errors} consecutive read failures, "
            f"recovering in {self.config.recovery_interval}s"
        )
        if self.safety.force_max_speed():
            state.current_speed = self.config.max_speed
        # Next reading must be evaluated even if it equals the last one
        state.last_temperature = None
        state.consecutive_errors = 0
        return self.config.recovery_interval

    def run(self, once: bool = False):
        self.logger.info(
            f"Fan controller starting for {self.config.host}: "
            f"{self.config.temp_low}-{self.config.temp_high}°C -> "
            f"{self.config.min_speed}-{self.config.max_speed}%, "
            f"hysteresis {self.config.hysteresis}°C, every {self.config.check_interval}s"
        )
        signal.signal(signal.SIGTERM, self._signal_handler)
        signal.signal(signal.SIGINT, self._signal_handler)
        try:
            while True:
                delay = self.run_cycle()
                if once:
                    break
                self._sleep(delay)
        except Exception as e:
            self.logger.critical(f"Fatal error: {e}")
            raise
