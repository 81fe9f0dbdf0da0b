"""
Model Adapters

A model turns a parameter value into a log density (and optionally its
gradient). Kernels only talk to models through:

    evaluate(params) -> scalar log density
    evaluate_with_gradient(params) -> (scalar log density, gradient)
    has_gradient -> bool
    dimension() -> int or None

Out-of-support parameters are expressed as -inf, never as an exception.
NaN and +inf results are also mapped to -inf so a numerically broken point
can never be accepted.

Adapters:
    DensityModel - wraps a plain log-density function, optional gradient fn
    DifferentiableDensityModel - DensityModel with a jax.value_and_grad gradient
    LogDensityModel - wraps an object implementing the log-density-problem
                      protocol (logdensity / dimension / logdensity_and_gradient)
    ad_gradient - adds an autodiff gradient to a density-only model
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple

import jax
import jax.numpy as jnp

from .error_handling import missing_capability


def sanitize_log_density(lp):
    """Map NaN and +inf log densities to -inf (as a default-float scalar)."""
    lp = jnp.asarray(lp, dtype=float)
    bad = jnp.isnan(lp) | (lp == jnp.inf)
    return jnp.where(bad, -jnp.inf, lp)


@dataclass(frozen=True)
class DensityModel:
    """
    Log-density function wrapper.

    Args:
        logdensity: fn(params) -> scalar. Must be traceable by JAX.
        gradient: Optional fn(params) -> gradient, or fn(params) -> (value,
                  gradient) when gradient_returns_value is True.
        dim: Optional number of parameters, used by kernels that build a
             default proposal.
        gradient_returns_value: See gradient.
    """
    logdensity: Callable[[Any], Any]
    gradient: Optional[Callable[[Any], Any]] = None
    dim: Optional[int] = None
    gradient_returns_value: bool = False

    @property
    def has_gradient(self) -> bool:
        return self.gradient is not None

    def dimension(self) -> Optional[int]:
        return self.dim

    def evaluate(self, params):
        return sanitize_log_density(self.logdensity(params))

    def evaluate_with_gradient(self, params) -> Tuple[Any, Any]:
        if self.gradient is None:
            raise missing_capability(self, 'evaluate_with_gradient', 'gradient-based kernels')
        if self.gradient_returns_value:
            lp, grad = self.gradient(params)
        else:
            lp, grad = self.logdensity(params), self.gradient(params)
        return sanitize_log_density(lp), grad


def DifferentiableDensityModel(logdensity: Callable[[Any], Any], dim: Optional[int] = None) -> DensityModel:
    """DensityModel whose gradient comes from jax.value_and_grad(logdensity)."""
    return DensityModel(
        logdensity=logdensity,
        gradient=jax.value_and_grad(logdensity),
        dim=dim,
        gradient_returns_value=True,
    )


class LogDensityModel:
    """
    Adapter for objects implementing the log-density-problem protocol.

    The wrapped problem must define logdensity(x). It may also define:
        dimension() -> int
        capabilities() -> int   0 = density only, >= 1 = gradient available
        logdensity_and_gradient(x) -> (value, gradient)

    If capabilities() is absent, gradients are considered available exactly
    when logdensity_and_gradient is defined.
    """

    def __init__(self, problem):
        if not callable(getattr(problem, 'logdensity', None)):
            raise missing_capability(problem, 'logdensity', 'LogDensityModel')
        self.problem = problem

    def __repr__(self):
        return f"LogDensityModel({self.problem!r})"

    @property
    def logdensity(self):
        return self.problem.logdensity

    @property
    def has_gradient(self) -> bool:
        has_method = callable(getattr(self.problem, 'logdensity_and_gradient', None))
        capabilities = getattr(self.problem, 'capabilities', None)
        if capabilities is None:
            return has_method
        return has_method and int(capabilities()) >= 1

    def dimension(self) -> Optional[int]:
        dimension = getattr(self.problem, 'dimension', None)
        return int(dimension()) if callable(dimension) else None

    def evaluate(self, params):
        return sanitize_log_density(self.problem.logdensity(params))

    def evaluate_with_gradient(self, params) -> Tuple[Any, Any]:
        if not self.has_gradient:
            raise missing_capability(self.problem, 'logdensity_and_gradient', 'gradient-based kernels')
        lp, grad = self.problem.logdensity_and_gradient(params)
        return sanitize_log_density(lp), grad


def ad_gradient(model) -> DensityModel:
    """
    Return a model with an autodiff gradient of model's log density.

    Accepts a DensityModel, a LogDensityModel, a protocol object (wrapped in
    LogDensityModel first) or a bare log-density function.
    """
    if callable(model) and not hasattr(model, 'logdensity'):
        return DifferentiableDensityModel(model)
    if not isinstance(model, (DensityModel, LogDensityModel)):
        model = LogDensityModel(model)
    return DifferentiableDensityModel(model.logdensity, dim=model.dimension())


def as_model(model):
    """Coerce a bare function or protocol object into a model adapter."""
    if isinstance(model, (DensityModel, LogDensityModel)):
        return model
    if hasattr(model, 'evaluate') and hasattr(model, 'has_gradient'):
        return model
    if hasattr(model, 'logdensity'):
        return LogDensityModel(model)
    if callable(model):
        return DensityModel(model)
    raise TypeError(f"Cannot use {type(model).__name__} as a model")


def ensure_gradient(model, needed_by: str = 'gradient-based kernels') -> None:
    """Raise CapabilityError unless model can evaluate gradients."""
    if not getattr(model, 'has_gradient', False):
        raise missing_capability(model, 'evaluate_with_gradient', needed_by)
