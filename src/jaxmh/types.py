"""
Sampler Data Structures and Type Definitions.

This module contains the records passed between kernels and the driver:
- Transition: One accepted-or-rejected Metropolis-Hastings step
- GradientTransition: Transition that also carries the log-density gradient
- get_params / set_params: Accessor and pure replacement of the parameters
- RunParams: Immutable run parameters for JAX static arguments

Transitions are frozen dataclasses registered as JAX pytrees, so a kernel
step can be traced by jit, carried through lax.scan, and stacked into a
chain history (every field gains a leading sample axis).
"""

import jax
import jax.numpy as jnp
from dataclasses import dataclass, replace
from typing import Any, Optional, Tuple


@dataclass(frozen=True)
class Transition:
    """
    Result of one Metropolis-Hastings step.

    Fields:
        params: Parameter value after the step. A scalar, an array, or a
                tuple/list/dict of those (any JAX pytree).
        lp: Log density of the target at params.
        accepted: Whether the candidate of this step was accepted.

    Never mutated; use set_params to obtain a record with new parameters.
    """
    params: Any
    lp: jnp.ndarray
    accepted: jnp.ndarray


@dataclass(frozen=True)
class GradientTransition:
    """
    Transition emitted by gradient-based kernels.

    gradient is the gradient of the log density at params, kept so the next
    step can build its forward proposal without re-evaluating the model.
    """
    params: Any
    lp: jnp.ndarray
    accepted: jnp.ndarray
    gradient: Any


def _transition_flatten(t):
    """Flatten Transition for JAX pytree."""
    return (t.params, t.lp, t.accepted), None


def _transition_unflatten(aux_data, children):
    """Unflatten Transition from JAX pytree."""
    params, lp, accepted = children
    return Transition(params=params, lp=lp, accepted=accepted)


def _gradient_transition_flatten(t):
    """Flatten GradientTransition for JAX pytree."""
    return (t.params, t.lp, t.accepted, t.gradient), None


def _gradient_transition_unflatten(aux_data, children):
    """Unflatten GradientTransition from JAX pytree."""
    params, lp, accepted, gradient = children
    return GradientTransition(params=params, lp=lp, accepted=accepted, gradient=gradient)


# Register transitions as JAX pytrees
jax.tree_util.register_pytree_node(
    Transition,
    _transition_flatten,
    _transition_unflatten
)
jax.tree_util.register_pytree_node(
    GradientTransition,
    _gradient_transition_flatten,
    _gradient_transition_unflatten
)


def get_params(transition):
    """Parameters held by a transition."""
    return transition.params


def set_params(transition, params):
    """
    Return a transition with params replaced and every other field kept.

    The input record is left untouched; callers must use the returned value.
    The log density, accepted flag and (if present) gradient are carried over
    as they are - they describe the old parameters until the next kernel step
    recomputes them.
    """
    return replace(transition, params=params)


@dataclass(frozen=True)
class RunParams:
    """
    Immutable run parameters for JAX static argument compatibility.

    Retained raw iterations (1-based, the initial transition is iteration 1):
        DISCARD_INITIAL + 1 + k * THINNING  for k = 0 .. N_SAMPLES - 1
    """
    N_SAMPLES: int
    DISCARD_INITIAL: int = 0
    THINNING: int = 1
    N_CHAINS: int = 1
    EXECUTION: str = 'serial'

    @property
    def total_iterations(self) -> int:
        """Number of raw iterations needed to produce N_SAMPLES retained ones."""
        return self.DISCARD_INITIAL + 1 + (self.N_SAMPLES - 1) * self.THINNING

    def retained_iterations(self) -> Tuple[int, ...]:
        """1-based raw iteration numbers kept in the output."""
        first = self.DISCARD_INITIAL + 1
        return tuple(range(first, first + self.N_SAMPLES * self.THINNING, self.THINNING))


def accepted_flag(value: Optional[bool] = True) -> jnp.ndarray:
    """Accepted flag as a JAX bool scalar (keeps scan carries type-stable)."""
    return jnp.asarray(bool(value))


def as_params(params):
    """
    Convert user-supplied parameters to JAX arrays of the default float dtype.

    A plain list or tuple of scalars is a parameter vector and becomes one
    1-D array ([0.4, 1.2] -> Array([0.4, 1.2])), also when nested inside a
    dict or NamedTuple. Other containers keep their structure and only the
    leaves are converted.
    """
    if _is_scalar_sequence(params):
        return jnp.asarray(params, dtype=float)
    if isinstance(params, dict):
        return type(params)((k, as_params(v)) for k, v in params.items())
    if hasattr(params, "_fields"):  # NamedTuple
        return type(params)(*(as_params(v) for v in params))
    if isinstance(params, (list, tuple)):
        return type(params)(as_params(v) for v in params)
    return jax.tree_util.tree_map(lambda x: jnp.asarray(x, dtype=float), params)


def _is_scalar_sequence(params) -> bool:
    if not isinstance(params, (list, tuple)) or hasattr(params, '_fields'):
        return False
    return len(params) > 0 and all(
        not isinstance(x, (list, tuple, dict)) and jnp.ndim(x) == 0 for x in params
    )
