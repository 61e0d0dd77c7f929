from __future__ import annotations

import logging

import pytest

from idrac_fan_controller.bmc import ReadError, WriteError
from idrac_fan_controller.config import ControllerConfig


class FakeBmc:
    """Scripted BMC: each read pops the next reading, or raises ReadError for None."""

    def __init__(self, readings=(), fail_writes=False):
        self.readings = list(readings)
        self.fail_writes = fail_writes
        self.applied = []
        self.attempted = []

    def read_max_temperature(self) -> float:
        value = self.readings.pop(0)
        if value is None:
            raise ReadError("sensor query failed")
        return value

    def apply_fan_speed(self, percent: int) -> None:
        self.attempted.append(percent)
        if self.fail_writes:
            raise WriteError("command rejected")
        self.applied.append(percent)


def make_config(**overrides) -> ControllerConfig:
    values = dict(host="10.0.0.5", user="root", password="calvin")
    values.update(overrides)
    return ControllerConfig(**values)


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def logger():
    return logging.getLogger("fan_controller_tests")
