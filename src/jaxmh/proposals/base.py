"""
Leaf Proposals

A leaf proposal wraps one distribution-like object, or a function
state -> distribution-like object. A distribution-like object needs:

    sample(key, sample_shape=())   always
    log_prob(value)                only if the proposal is asymmetric

numpyro.distributions objects satisfy both. Sampling and density calls go
through draw / log_density, which raise CapabilityError when the
distribution lacks the method instead of failing somewhere deeper.

Two kinds:
    StaticProposal:     candidate ~ q(. | current)          (q may ignore current)
    RandomWalkProposal: candidate = current + step,  step ~ q(. | current)

Each carries a symmetric flag. The flag is a plain Python attribute, so
inside a jitted kernel step it is resolved while tracing: for a symmetric
proposal the log-density branch is never traced, let alone run. This is what
lets a symmetric proposal wrap a distribution that has no log_prob at all.
"""

from dataclasses import dataclass
from typing import Any

import jax
import jax.numpy as jnp

from ..error_handling import missing_capability


def is_distribution(obj) -> bool:
    """True for distribution-like objects (anything with a sample method)."""
    return callable(getattr(obj, 'sample', None))


def draw(dist, key, sample_shape=()):
    """Sample from a distribution-like object."""
    if not is_distribution(dist):
        raise missing_capability(dist, 'sample', 'proposal sampling')
    if sample_shape:
        return dist.sample(key, sample_shape)
    return dist.sample(key)


def log_density(dist, value, needed_by):
    """Total log density of value (summed over all elements)."""
    log_prob = getattr(dist, 'log_prob', None)
    if not callable(log_prob):
        raise missing_capability(dist, 'log_prob', needed_by)
    return jnp.sum(log_prob(value))


def _dist_shape(dist):
    """batch_shape + event_shape of a distribution, () if it does not say."""
    return tuple(getattr(dist, 'batch_shape', ())) + tuple(getattr(dist, 'event_shape', ()))


@dataclass(frozen=True)
class Proposal:
    """
    Base class for leaf proposals.

    Fields:
        dist: Distribution-like object, a function state -> distribution-like
              object, or a list/tuple/dict of either (expanded into a
              composite of leaves of the same kind, see composite.expand).
        symmetric: If True, the proposal density ratio is identically zero
                   and the distribution's log_prob is never called.
    """
    dist: Any
    symmetric: bool = False

    @property
    def is_state_dependent(self) -> bool:
        return callable(self.dist) and not is_distribution(self.dist)

    def distribution(self, state):
        """The proposal distribution at state."""
        return self.dist(state) if self.is_state_dependent else self.dist

    def initial_distribution(self):
        """The distribution used when there is no current state yet."""
        return self.dist() if self.is_state_dependent else self.dist

    def with_dist(self, dist):
        """Same kind and symmetry, different distribution."""
        return type(self)(dist, symmetric=self.symmetric)

    def __repr__(self):
        flag = 'symmetric' if self.symmetric else 'asymmetric'
        return f"{type(self).__name__}[{flag}]({self.dist!r})"


class StaticProposal(Proposal):
    """
    Proposal whose candidate is drawn directly from q(. | current).

    With a plain distribution the candidate does not depend on the current
    state (independence sampler); with a function the distribution is
    rebuilt from the current state at every step.
    """

    def propose(self, key, state):
        return draw(self.distribution(state), key)

    def initial(self, key):
        return draw(self.initial_distribution(), key)

    def logratio(self, state, candidate):
        """log q(state | candidate) - log q(candidate | state)."""
        if self.symmetric:
            return 0.0
        backward = log_density(self.distribution(candidate), state, self)
        forward = log_density(self.distribution(state), candidate, self)
        return backward - forward


class RandomWalkProposal(Proposal):
    """
    Proposal whose candidate is current + step, step ~ q(. | current).

    A scalar step distribution acting on an array state draws one
    independent step per element.
    """

    def _step(self, dist, key, state):
        state_shape = jnp.shape(state)
        sample_shape = state_shape if state_shape and not _dist_shape(dist) else ()
        return draw(dist, key, sample_shape)

    def propose(self, key, state):
        step = self._step(self.distribution(state), key, state)
        return jax.tree_util.tree_map(jnp.add, state, step)

    def initial(self, key):
        return draw(self.initial_distribution(), key)

    def logratio(self, state, candidate):
        """log q_candidate(state - candidate) - log q_state(candidate - state)."""
        if self.symmetric:
            return 0.0
        backward_step = jax.tree_util.tree_map(jnp.subtract, state, candidate)
        forward_step = jax.tree_util.tree_map(jnp.subtract, candidate, state)
        backward = log_density(self.distribution(candidate), backward_step, self)
        forward = log_density(self.distribution(state), forward_step, self)
        return backward - forward


def SymmetricStaticProposal(dist) -> StaticProposal:
    """StaticProposal declared symmetric: q(a | b) == q(b | a)."""
    return StaticProposal(dist, symmetric=True)


def SymmetricRandomWalkProposal(dist) -> RandomWalkProposal:
    """RandomWalkProposal declared symmetric: the step distribution is even."""
    return RandomWalkProposal(dist, symmetric=True)
