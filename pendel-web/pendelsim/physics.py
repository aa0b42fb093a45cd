"""
Numerical physics for the simple pendulum animation.

This module provides:
- The mutable SimulationState (angle, angular velocity, gravity, target energy)
- A fixed-tick explicit Euler integrator with sub-stepping
- Energy correction on the velocity axis to cancel numerical drift
- Energy computation and angle normalization helpers
- Position helper for visualization

Unit mass and unit rod length throughout. Angles are measured from the
vertical (downwards is 0 rad).
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from typing import Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

TWO_PI = 2.0 * math.pi

INITIAL_THETA = 0.0
INITIAL_ANGULAR_VELOCITY = math.pi / 2.0
INITIAL_GRAVITY = 1.0
INITIAL_ENERGY = 0.23370055013616975

# One frame at 60 Hz, in milliseconds.
NOMINAL_TICK_MS = 16.0 + 2.0 / 3.0
EPSILON = 1e-4
# Caps the catch-up after a long pause (60 ticks).
MAX_ELAPSED_MS = 1000.0
MIN_CORRECTION_VELOCITY = 1e-3
MAX_CORRECTION_STEPS = 8


def mechanical_energy(theta: float, angular_velocity: float, gravity: float) -> float:
    """Kinetic plus potential energy; potential is zero at the hinge height."""
    kinetic = 0.5 * angular_velocity * angular_velocity
    potential = -gravity * math.cos(theta)
    return kinetic + potential


def normalize_angle(theta: float) -> float:
    """Reduce an angle into [0, 2*pi)."""
    a = theta % TWO_PI
    # -1e-17 % 2pi rounds to exactly 2pi
    if a >= TWO_PI:
        a = 0.0
    return a


@dataclass
class SimulationState:
    """Physical state owned by a session and mutated in place by step()."""

    theta: float = INITIAL_THETA
    angular_velocity: float = INITIAL_ANGULAR_VELOCITY
    gravity: float = INITIAL_GRAVITY
    # None means: the energy of the initial conditions
    target_energy: Optional[float] = None

    def __post_init__(self) -> None:
        if self.target_energy is None:
            self.target_energy = mechanical_energy(self.theta, self.angular_velocity, self.gravity)

    @classmethod
    def initial(
        cls,
        angular_velocity: float = INITIAL_ANGULAR_VELOCITY,
        gravity: float = INITIAL_GRAVITY,
        theta: float = INITIAL_THETA,
    ) -> "SimulationState":
        """Build a state whose target energy matches its initial conditions."""
        return cls(theta=theta, angular_velocity=angular_velocity, gravity=gravity)

    @property
    def energy(self) -> float:
        return mechanical_energy(self.theta, self.angular_velocity, self.gravity)

    @property
    def energy_error(self) -> float:
        return self.energy - self.target_energy

    def copy(self) -> "SimulationState":
        return replace(self)


def energy_correction(state: SimulationState, epsilon: float = EPSILON) -> bool:
    """Nudge the angular velocity so the total energy returns to the target.

    The angle is periodic, so the whole energy error is attributed to the
    velocity. dE/dv is v, hence a Newton step along the velocity axis moves
    v by diff / v. The sign is picked so |v| shrinks when there is too much
    energy and grows when there is too little, whichever way the bob swings.

    Steps repeat until the error is within epsilon. From below a Newton step
    overshoots the target speed, so growth is capped at that speed; from
    above it converges without undershooting.

    Returns True if the velocity was adjusted.
    """
    v = state.angular_velocity
    potential = -state.gravity * math.cos(state.theta)
    kinetic_target = state.target_energy - potential
    diff = 0.5 * v * v - kinetic_target
    if not math.isfinite(diff) or abs(diff) <= epsilon:
        return False
    if abs(v) < MIN_CORRECTION_VELOCITY:
        # diff / v is singular at v == 0
        return False
    if kinetic_target < 0.0:
        # bob is above the height the target energy allows; no real velocity fits
        return False

    target_speed = math.sqrt(2.0 * kinetic_target)
    speed_sign = 1.0 if v > 0 else -1.0
    corrected = v
    for _ in range(MAX_CORRECTION_STEPS):
        adjustment = abs(diff / corrected)
        direction = -1.0 if diff > 0 else 1.0
        corrected = corrected + direction * speed_sign * adjustment
        if direction > 0 and abs(corrected) > target_speed:
            corrected = speed_sign * target_speed
        diff = 0.5 * corrected * corrected - kinetic_target
        if abs(diff) <= epsilon or abs(corrected) < MIN_CORRECTION_VELOCITY:
            break
    if not math.isfinite(corrected):
        return False
    state.angular_velocity = corrected
    return True


def integrate_tick(state: SimulationState, dt_ms: float) -> None:
    """Advance the state by one sub-step of dt_ms milliseconds."""
    dt = dt_ms / 1000.0
    accel = -state.gravity * math.sin(state.theta)

    # position first, with the velocity from before this tick's acceleration
    theta = state.theta + state.angular_velocity * dt
    omega = state.angular_velocity + accel * dt
    if not (math.isfinite(theta) and math.isfinite(omega)):
        logger.warning("dropping non-finite tick (dt_ms=%r, state=%r)", dt_ms, state)
        return

    state.theta = theta
    state.angular_velocity = omega
    # floating point error compounds and slowly pumps energy into the system
    energy_correction(state)
    state.theta = normalize_angle(state.theta)


def step(state: SimulationState, elapsed_ms: float, max_elapsed_ms: float = MAX_ELAPSED_MS) -> None:
    """Advance the simulation by elapsed_ms of wall-clock time.

    The delta is consumed in ticks of at most NOMINAL_TICK_MS, so a slow frame
    never makes the pendulum run faster. Negative, zero and non-finite deltas
    are ignored, and deltas above max_elapsed_ms are clamped.
    """
    if not math.isfinite(elapsed_ms) or elapsed_ms <= 0:
        return
    if elapsed_ms > max_elapsed_ms:
        logger.debug("clamping elapsed time %.1f ms to %.1f ms", elapsed_ms, max_elapsed_ms)
        elapsed_ms = max_elapsed_ms

    remaining = float(elapsed_ms)
    while remaining > 0:
        integrate_tick(state, min(remaining, NOMINAL_TICK_MS))
        remaining -= NOMINAL_TICK_MS


def bob_position(
    center: Sequence[float], theta: float, rod_length: float, ball_radius: float
) -> Tuple[float, float]:
    """Screen position of the ball centre; y grows downwards."""
    reach = rod_length + ball_radius
    x = center[0] + reach * math.sin(theta)
    y = center[1] + reach * math.cos(theta)
    return (x, y)
