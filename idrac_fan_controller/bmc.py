from __future__ import annotations

import logging
import re
import subprocess
from typing import Iterable, List, Optional, Protocol, Sequence, Tuple

# Dell raw OEM command: set static fan duty on all fans (0xff)
SET_SPEED_OPCODE: Tuple[str, ...] = ("0x30", "0x30", "0x02", "0xff")

_DEGREES_RE = re.compile(r"(-?\d+(?:\.\d+)?)\s*degrees\s*C", re.IGNORECASE)


class BmcError(Exception):
    """Base class for failed BMC round trips."""


class ReadError(BmcError):
    """The temperature query failed or returned no usable reading."""


class WriteError(BmcError):
    """The fan speed command was rejected or never reached the BMC."""


class BmcClient(Protocol):
    """The two BMC operations the control loop depends on."""

    def read_max_temperature(self) -> float:
        ...

    def apply_fan_speed(self, percent: int) -> None:
        ...


def percent_to_byte(percent: float) -> int:
    """Duty byte for a percent. The byte value equals the percent (0x00-0x64)."""
    value = int(round(percent))
    if value < 0 or value > 100:
        raise ValueError(f"Fan speed must be within 0..100%, got {percent}")
    return value


def encode_speed_command(percent: float) -> List[str]:
    """Raw command arguments that pin every fan to `percent`."""
    return [*SET_SPEED_OPCODE, f"0x{percent_to_byte(percent):02x}"]


def parse_temperatures(output: str, sensor_filter: Iterable[str] = ()) -> List[Tuple[str, float]]:
    """Extract (sensor name, °C) pairs from `ipmitool sdr type temperature`.

    Records look like ``Exhaust Temp | 01h | ok | 7.1 | 35 degrees C``.
    Disabled or non-reading records are skipped, and when `sensor_filter` is
    given only sensors whose name contains one of its tokens are kept.
    """
    tokens = tuple(t.lower() for t in sensor_filter if t)
    readings: List[Tuple[str, float]] = []
    for line in output.splitlines():
        parts = [p.strip() for p in line.split("|")]
        if len(parts) < 2:
            continue
        name = parts[0]
        if tokens and not any(tok in name.lower() for tok in tokens):
            continue
        match = _DEGREES_RE.search(parts[-1])
        if match:
            readings.append((name, float(match.group(1))))
    return readings


class IpmiToolClient:
    """Talks to the BMC by shelling out to `ipmitool` over lanplus.

    Every call is a single subprocess bounded by `timeout`; no retries
    happen here.
    """

    def __init__(
        self,
        host: str,
        user: str,
        password: str,
        *,
        timeout: float = 10,
        sensor_filter: Sequence[str] = (),
        ipmitool: str = "ipmitool",
        logger: Optional[logging.Logger] = None,
    ):
        self.host = host
        self.user = user
        self.password = password
        self.timeout = timeout
        self.sensor_filter = tuple(sensor_filter)
        self.ipmitool = ipmitool
        self.logger = logger or logging.getLogger(self.__class__.__name__)

    @classmethod
    def from_config(cls, config, logger: Optional[logging.Logger] = None) -> "IpmiToolClient":
        return cls(
            config.host,
            config.user,
            config.password,
            timeout=config.ipmi_timeout,
            sensor_filter=config.sensor_filter,
            logger=logger,
        )

    def _base_command(self) -> List[str]:
        return [
            self.ipmitool,
            "-I", "lanplus",
            "-H", self.host,
            "-U", self.user,
            "-P", self.password,
        ]

    def _run(self, args: Sequence[str]) -> subprocess.CompletedProcess:
        cmd = self._base_command() + list(args)
        self.logger.debug("Running ipmitool %s against %s", " ".join(args), self.host)
        return subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)

    def read_max_temperature(self) -> float:
        try:
            result = self._run(["sdr", "type", "temperature"])
        except FileNotFoundError as exc:
            raise ReadError(f"{self.ipmitool} not found") from exc
        except subprocess.TimeoutExpired as exc:
            raise ReadError(f"Temperature query timed out after {self.timeout}s") from exc
        except OSError as exc:
            raise ReadError(f"Failed to run {self.ipmitool}: {exc}") from exc

        if result.returncode != 0:
            detail = f": {result.stderr.strip()}" if result.stderr else ""
            raise ReadError(f"Temperature query failed with code {result.returncode}{detail}")

        readings = parse_temperatures(result.stdout, self.sensor_filter)
        if not readings:
            raise ReadError("No temperature reading found in sensor output")

        name, value = max(readings, key=lambda r: r[1])
        self.logger.debug(f"Read {len(readings)} temperature sensors, hottest {name} = {value}°C")
        return value

    def apply_fan_speed(self, percent: int) -> None:
        args = ["raw", *encode_speed_command(percent)]
        try:
            result = self._run(args)
        except FileNotFoundError as exc:
            raise WriteError(f"{self.ipmitool} not found") from exc
        except subprocess.TimeoutExpired as exc:
            raise WriteError(f"Fan speed command timed out after {self.timeout}s") from exc
        except OSError as exc:
            raise WriteError(f"Failed to run {self.ipmitool}: {exc}") from exc

        if result.returncode != 0:
            detail = f": {result.stderr.strip()}" if result.stderr else ""
            raise WriteError(f"Fan speed command failed with code {result.returncode}{detail}")
