from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional, Tuple

from pendelsim.physics import (
    INITIAL_ANGULAR_VELOCITY,
    INITIAL_GRAVITY,
    INITIAL_THETA,
    MAX_ELAPSED_MS,
    SimulationState,
    bob_position,
    step,
)

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Raised when a configuration value is rejected."""


def _finite(name: str, value: float) -> float:
    value = float(value)
    if not math.isfinite(value):
        raise ConfigError(f"{name} must be a finite number, got {value!r}")
    return value


@dataclass
class SimulationConfig:
    """Initial conditions and drawing parameters for a session."""

    initial_theta: float = INITIAL_THETA
    initial_angular_velocity: float = INITIAL_ANGULAR_VELOCITY
    gravity: float = INITIAL_GRAVITY
    max_elapsed_ms: float = MAX_ELAPSED_MS

    rod_length: float = 75.0
    ball_radius: float = 10.0
    width: int = 800
    height: int = 600

    frame_interval_s: float = 1.0 / 60.0

    def validate(self) -> "SimulationConfig":
        _finite("initial_theta", self.initial_theta)
        _finite("initial_angular_velocity", self.initial_angular_velocity)
        if _finite("gravity", self.gravity) < 0:
            raise ConfigError(f"gravity must be >= 0, got {self.gravity!r}")
        if _finite("max_elapsed_ms", self.max_elapsed_ms) <= 0:
            raise ConfigError(f"max_elapsed_ms must be > 0, got {self.max_elapsed_ms!r}")
        if _finite("frame_interval_s", self.frame_interval_s) <= 0:
            raise ConfigError(f"frame_interval_s must be > 0, got {self.frame_interval_s!r}")
        if self.rod_length <= 0 or self.ball_radius <= 0:
            raise ConfigError("rod_length and ball_radius must be > 0")
        if self.width <= 0 or self.height <= 0:
            raise ConfigError(f"surface size must be positive, got {self.width}x{self.height}")
        return self


@dataclass
class SimulationSession:
    """Holds the per-session simulation state and parameters."""

    config: SimulationConfig = field(default_factory=SimulationConfig)
    state: SimulationState = field(init=False)

    running: bool = False
    sim_time_ms: float = 0.0
    frames: int = 0
    last_time_ms: Optional[float] = None

    def __post_init__(self) -> None:
        self.config.validate()
        self.state = self._initial_state()

    def _initial_state(self) -> SimulationState:
        return SimulationState.initial(
            angular_velocity=self.config.initial_angular_velocity,
            gravity=self.config.gravity,
            theta=self.config.initial_theta,
        )

    def tick(self, now_ms: float) -> float:
        """Clock entry point: advance by the time since the previous call.

        The first call after start() or reset() only records the time.
        Returns the elapsed time handed to the integrator.
        """
        if self.last_time_ms is None:
            elapsed = 0.0
        else:
            elapsed = max(0.0, float(now_ms) - self.last_time_ms)
        self.last_time_ms = float(now_ms)
        return self.advance(elapsed)

    def advance(self, elapsed_ms: float) -> float:
        """Step the state by an explicit delta, if running."""
        if not self.running:
            return 0.0
        if not math.isfinite(elapsed_ms) or elapsed_ms <= 0:
            return 0.0
        elapsed = min(float(elapsed_ms), self.config.max_elapsed_ms)
        step(self.state, elapsed, max_elapsed_ms=self.config.max_elapsed_ms)
        self.sim_time_ms += elapsed
        self.frames += 1
        return elapsed

    def start(self) -> None:
        if not self.running:
            logger.info("simulation started")
        self.running = True
        self.last_time_ms = None

    def stop(self) -> None:
        if self.running:
            logger.info("simulation stopped after %d frames", self.frames)
        self.running = False
        self.last_time_ms = None

    def reset(self) -> None:
        """Restore the initial angle and velocity and re-derive the target energy."""
        self.state = self._initial_state()
        self.sim_time_ms = 0.0
        self.frames = 0
        self.last_time_ms = None
        logger.info("simulation reset (gravity=%g, target_energy=%g)", self.state.gravity, self.state.target_energy)

    def set_gravity(self, value: float) -> None:
        g = _finite("gravity", value)
        if g < 0:
            raise ConfigError(f"gravity must be >= 0, got {g!r}")
        if g == self.config.gravity and g == self.state.gravity:
            return
        self.config.gravity = g
        self.reset()

    def set_initial_angular_velocity(self, value: float) -> None:
        v = _finite("initial_angular_velocity", value)
        if v == self.config.initial_angular_velocity:
            return
        self.config.initial_angular_velocity = v
        self.reset()

    def set_target_energy(self, value: float) -> None:
        """Overwrite the energy the corrector steers towards; the motion is kept."""
        energy = _finite("target_energy", value)
        if energy != self.state.target_energy:
            logger.info("target energy %g -> %g", self.state.target_energy, energy)
        self.state.target_energy = energy

    def set_surface_size(self, width: int, height: int) -> None:
        if width <= 0 or height <= 0:
            raise ConfigError(f"surface size must be positive, got {width}x{height}")
        self.config.width = int(width)
        self.config.height = int(height)

    def center(self) -> Tuple[int, int]:
        return (self.config.width // 2, self.config.height // 2)

    def bob_position(self) -> Tuple[float, float]:
        return bob_position(self.center(), self.state.theta, self.config.rod_length, self.config.ball_radius)

    def energy_drift(self) -> float:
        """Relative deviation of the current energy from the target."""
        e0 = self.state.target_energy
        return abs(self.state.energy - e0) / max(1e-9, abs(e0))

    def snapshot(self) -> Dict[str, Any]:
        return {
            "state": asdict(self.state),
            "energy": self.state.energy,
            "energy_drift": self.energy_drift(),
            "running": self.running,
            "sim_time_ms": self.sim_time_ms,
            "frames": self.frames,
            "config": asdict(self.config),
        }
