"""
Metropolis-Hastings Kernel

One step, with the state machine propose -> evaluate -> accept/reject:

    candidate   = propose(propose_key, proposal, current.params)
    candidate_lp = model.evaluate(candidate)
    log_alpha   = candidate_lp - current.lp
                  + logratio_proposal_density(proposal, current.params, candidate)
    accept      = log(u) < log_alpha,  u ~ Uniform(0, 1) drawn with accept_key

RNG order inside a step: the step key is split once into
(propose_key, accept_key); the proposal consumes propose_key (composites
split it further per child), the uniform draw consumes accept_key.

A -inf candidate log density is rejected whatever u is, and a NaN log_alpha
(e.g. -inf - -inf) also rejects because every comparison with NaN is False.
"""

from dataclasses import dataclass
from typing import Any

import jax
import jax.numpy as jnp
import jax.random as random
import numpyro.distributions as dist

from ..proposals import (
    Proposal,
    StaticProposal,
    RandomWalkProposal,
    propose,
    initial_draw,
    logratio_proposal_density,
)
from ..types import Transition, accepted_flag, as_params


def mh_accept(accept_key, log_alpha, candidate_lp):
    """
    Metropolis-Hastings acceptance decision.

    Args:
        accept_key: JAX random key for the uniform variate
        log_alpha: Log acceptance ratio
        candidate_lp: Log density of the candidate

    Returns:
        JAX bool scalar, True if the candidate is accepted
    """
    log_uniform = jnp.log(random.uniform(accept_key, shape=()))
    return (log_uniform < log_alpha) & (candidate_lp > -jnp.inf)


def select(accept, candidate, current):
    """Pick candidate or current leaf-by-leaf according to accept."""
    return jax.tree_util.tree_map(lambda c, s: jnp.where(accept, c, s), candidate, current)


@dataclass(frozen=True)
class MetropolisHastings:
    """
    Metropolis-Hastings kernel over an arbitrary proposal structure.

    Fields:
        proposal: Leaf proposal, or a list/tuple/dict of proposals matching
                  the structure of the parameters.
    """
    proposal: Any

    # Initial parameters may be drawn from the proposal
    requires_initial_params = False

    def init(self, key, model, initial_params=None) -> Transition:
        """
        Build the first transition.

        Uses initial_params if given, otherwise draws them from the proposal
        with key. The first transition counts as accepted.
        """
        if initial_params is None:
            params = initial_draw(key, self.proposal)
        else:
            params = as_params(initial_params)
        return Transition(params=params, lp=model.evaluate(params), accepted=accepted_flag(True))

    def step(self, key, model, transition) -> Transition:
        """One Metropolis-Hastings transition from transition."""
        propose_key, accept_key = random.split(key)

        candidate = propose(propose_key, self.proposal, transition.params)
        candidate_lp = model.evaluate(candidate)

        log_alpha = (
            candidate_lp - transition.lp
            + logratio_proposal_density(self.proposal, transition.params, candidate)
        )
        accept = mh_accept(accept_key, log_alpha, candidate_lp)

        return Transition(
            params=select(accept, candidate, transition.params),
            lp=jnp.where(accept, candidate_lp, transition.lp),
            accepted=accept,
        )


def _standard_normal(d: int):
    return dist.MultivariateNormal(jnp.zeros(d), jnp.eye(d))


def _contains_proposals(obj) -> bool:
    if isinstance(obj, Proposal):
        return True
    if isinstance(obj, dict):
        return any(_contains_proposals(v) for v in obj.values())
    if isinstance(obj, (list, tuple)):
        return any(_contains_proposals(v) for v in obj)
    return False


def _as_proposal(proposal, kind):
    """
    Normalize the proposal argument of StaticMH / RWMH.

    int d          -> kind(MultivariateNormal(0, I_d))
    proposals      -> unchanged (leaf or container of leaves)
    anything else  -> kind(proposal) (distribution, function, or container of them)
    """
    if isinstance(proposal, int) and not isinstance(proposal, bool):
        if proposal < 1:
            raise ValueError(f"Proposal dimension must be >= 1, got {proposal}")
        return kind(_standard_normal(proposal))
    if _contains_proposals(proposal):
        return proposal
    return kind(proposal)


def StaticMH(proposal) -> MetropolisHastings:
    """Metropolis-Hastings with static (independence) proposals."""
    return MetropolisHastings(_as_proposal(proposal, StaticProposal))


def RWMH(proposal) -> MetropolisHastings:
    """Random-walk Metropolis-Hastings."""
    return MetropolisHastings(_as_proposal(proposal, RandomWalkProposal))
