"""
MALA (Metropolis-Adjusted Langevin Algorithm) Kernel

Gradient-based random-walk proposal. The user supplies proposal_fn, the
drift/diffusion rule mapping a gradient to the distribution of the step:

    step ~ proposal_fn(grad log p(x))
    x'   = x + step

The standard rule (langevin_proposal) is

    proposal_fn(g) = N((eps/2) * g, eps * I)

The proposal is asymmetric, so the Hastings correction is

    log q(x | x') - log q(x' | x)
        = log proposal_fn(grad(x')).pdf(x - x') - log proposal_fn(grad(x)).pdf(x' - x)

Step order (fixed, reproducible for a given key):
    1. split key -> (propose_key, accept_key)
    2. forward distribution from the gradient stored in the current transition
    3. draw the step with propose_key
    4. evaluate (lp, grad) at the candidate
    5. backward distribution from the candidate gradient
    6. draw the uniform with accept_key

There is no generic default starting point for a gradient walk in an
arbitrary number of dimensions, so initial parameters are mandatory.
"""

from dataclasses import dataclass
from typing import Any, Callable

import jax
import jax.numpy as jnp
import jax.random as random
import numpyro.distributions as dist

from ..error_handling import ConfigurationError
from ..model import ensure_gradient
from ..proposals.base import draw, log_density
from ..types import GradientTransition, accepted_flag, as_params
from .metropolis import mh_accept, select


def langevin_proposal(step_size: float) -> Callable[[Any], Any]:
    """
    Standard Langevin drift/diffusion rule.

    Args:
        step_size: eps, the variance of the diffusion. The drift is
                   (eps/2) * gradient.

    Returns:
        proposal_fn(gradient) -> Normal((eps/2) * gradient, sqrt(eps)) with
        the gradient's dimensions as the event shape
    """
    if step_size <= 0:
        raise ConfigurationError(f"step_size must be > 0, got {step_size}")
    scale = jnp.sqrt(step_size)

    def proposal_fn(gradient):
        gradient = jnp.asarray(gradient)
        return dist.Normal(0.5 * step_size * gradient, scale).to_event(jnp.ndim(gradient))

    return proposal_fn


def _tree_sub(a, b):
    return jax.tree_util.tree_map(jnp.subtract, a, b)


@dataclass(frozen=True)
class MALA:
    """
    Metropolis-adjusted Langevin kernel.

    Fields:
        proposal_fn: fn(gradient) -> distribution-like object of the step.
                     The distribution must implement log_prob.
    """
    proposal_fn: Callable[[Any], Any]

    # No default starting point for a gradient-based walk
    requires_initial_params = True

    def init(self, key, model, initial_params=None) -> GradientTransition:
        """
        Build the first transition at initial_params.

        key is accepted for interface parity with MetropolisHastings and is
        not used.

        Raises:
            ConfigurationError: initial_params is None
            CapabilityError: model cannot evaluate gradients
        """
        del key
        if initial_params is None:
            raise ConfigurationError(
                "MALA requires initial_params: there is no default starting point "
                "for a gradient-based kernel"
            )
        ensure_gradient(model, 'MALA')
        params = as_params(initial_params)
        lp, gradient = model.evaluate_with_gradient(params)
        return GradientTransition(
            params=params, lp=lp, accepted=accepted_flag(True), gradient=gradient,
        )

    def step(self, key, model, transition) -> GradientTransition:
        """One MALA transition from transition."""
        ensure_gradient(model, 'MALA')
        propose_key, accept_key = random.split(key)
        params = transition.params

        forward = self.proposal_fn(transition.gradient)
        increment = draw(forward, propose_key)
        candidate = jax.tree_util.tree_map(jnp.add, params, increment)

        candidate_lp, candidate_gradient = model.evaluate_with_gradient(candidate)
        backward = self.proposal_fn(candidate_gradient)

        log_ratio = (
            log_density(backward, _tree_sub(params, candidate), self)
            - log_density(forward, _tree_sub(candidate, params), self)
        )
        log_alpha = candidate_lp - transition.lp + log_ratio
        accept = mh_accept(accept_key, log_alpha, candidate_lp)

        return GradientTransition(
            params=select(accept, candidate, params),
            lp=jnp.where(accept, candidate_lp, transition.lp),
            accepted=accept,
            gradient=select(accept, candidate_gradient, transition.gradient),
        )
