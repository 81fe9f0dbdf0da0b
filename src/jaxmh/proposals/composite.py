"""
Proposal Composition

Proposals and parameters may be scalars (a leaf proposal acting on one
value), ordered sequences (list/tuple of proposals acting on a list, tuple or
the leading axis of an array) or named mappings (dict of proposals acting on
a dict with the same keys). The three public operations recurse over that
structure:

    propose(key, proposal, state)                  -> candidate of state's shape
    initial_draw(key, proposal)                    -> parameters with no prior state
    logratio_proposal_density(proposal, s, c)      -> sum of leaf log ratios

Dispatch goes through small registries keyed by proposal type (looked up
along the MRO so subclasses such as OrderedDict or NamedTuple work), in the
same spirit as a proposal dispatch table: one handler per container kind,
no attribute sniffing.

RNG: a composite splits its key into one subkey per child, in child order
(mapping children in the proposal's key order).
"""

from typing import Any, Callable, Dict

import jax.numpy as jnp
import jax.random as random

from .base import Proposal


def expand(proposal):
    """
    Expand a leaf built from a container of distributions into a container
    of leaves of the same kind and symmetry.

        StaticProposal([Normal(0, 1), InverseGamma(2, 3)])
            -> [StaticProposal(Normal(0, 1)), StaticProposal(InverseGamma(2, 3))]
    """
    if isinstance(proposal, Proposal):
        dist = proposal.dist
        if isinstance(dist, dict):
            return {k: expand(proposal.with_dist(d)) for k, d in dist.items()}
        if isinstance(dist, (list, tuple)):
            return type(dist)(expand(proposal.with_dist(d)) for d in dist)
    return proposal


def _lookup(registry: Dict[type, Callable], proposal) -> Callable:
    for cls in type(proposal).__mro__:
        if cls in registry:
            return registry[cls]
    raise TypeError(
        f"Unsupported proposal type {type(proposal).__name__}; expected a Proposal, "
        f"or a list, tuple or dict of proposals"
    )


# ============================================================================
# STRUCTURE HELPERS
# ============================================================================

def _sequence_elements(proposals, state):
    """Split state into one element per proposal, checking the length."""
    if isinstance(state, (list, tuple)):
        elements = list(state)
    elif jnp.ndim(state) >= 1:
        elements = [state[i] for i in range(jnp.shape(state)[0])]
    else:
        raise ValueError(
            f"A sequence of {len(proposals)} proposals needs a sequence or array state, "
            f"got a scalar"
        )
    if len(elements) != len(proposals):
        raise ValueError(
            f"Proposal/parameter shape mismatch: {len(proposals)} proposals "
            f"for {len(elements)} parameters"
        )
    return elements


def _rebuild_sequence(state, values):
    """Reassemble values into the container type of state."""
    if hasattr(state, '_fields'):  # NamedTuple
        return type(state)(*values)
    if isinstance(state, tuple):
        return tuple(values)
    if isinstance(state, list):
        return list(values)
    return jnp.stack([jnp.asarray(v) for v in values])


def _mapping_elements(proposals, state):
    """Pair each named proposal with the state entry of the same name."""
    if not hasattr(state, 'keys'):
        raise ValueError(
            f"A mapping of proposals needs a mapping state, got {type(state).__name__}"
        )
    if set(proposals.keys()) != set(state.keys()):
        raise ValueError(
            f"Proposal/parameter shape mismatch: proposal keys {sorted(proposals.keys())} "
            f"vs parameter keys {sorted(state.keys())}"
        )
    return [state[k] for k in proposals.keys()]


def _stack_initial(values):
    """Initial draws from a list of proposals form an array when they can."""
    shapes = {jnp.shape(v) for v in values}
    if len(shapes) == 1:
        return jnp.stack([jnp.asarray(v) for v in values])
    return list(values)


# ============================================================================
# PROPOSE
# ============================================================================

def _propose_leaf(key, proposal, state):
    expanded = expand(proposal)
    if expanded is not proposal:
        return propose(key, expanded, state)
    return proposal.propose(key, state)


def _propose_sequence(key, proposals, state):
    elements = _sequence_elements(proposals, state)
    keys = random.split(key, len(proposals))
    values = [propose(k, p, s) for k, p, s in zip(keys, proposals, elements)]
    return _rebuild_sequence(state, values)


def _propose_mapping(key, proposals, state):
    elements = _mapping_elements(proposals, state)
    keys = random.split(key, len(proposals))
    return {
        name: propose(k, p, s)
        for k, (name, p), s in zip(keys, proposals.items(), elements)
    }


_PROPOSE_REGISTRY = {
    Proposal: _propose_leaf,
    list: _propose_sequence,
    tuple: _propose_sequence,
    dict: _propose_mapping,
}


def propose(key, proposal, state):
    """
    Draw a candidate from proposal given the current state.

    Args:
        key: JAX random key
        proposal: Leaf proposal or list/tuple/dict of proposals
        state: Current parameters, same structure as proposal

    Returns:
        Candidate parameters with the same structure as state
    """
    return _lookup(_PROPOSE_REGISTRY, proposal)(key, proposal, state)


# ============================================================================
# INITIAL DRAW
# ============================================================================

def _initial_leaf(key, proposal):
    expanded = expand(proposal)
    if expanded is not proposal:
        return initial_draw(key, expanded)
    return proposal.initial(key)


def _initial_sequence(key, proposals):
    keys = random.split(key, len(proposals))
    values = [initial_draw(k, p) for k, p in zip(keys, proposals)]
    if isinstance(proposals, tuple):
        return tuple(values)
    return _stack_initial(values)


def _initial_mapping(key, proposals):
    keys = random.split(key, len(proposals))
    return {name: initial_draw(k, p) for k, (name, p) in zip(keys, proposals.items())}


_INITIAL_REGISTRY = {
    Proposal: _initial_leaf,
    list: _initial_sequence,
    tuple: _initial_sequence,
    dict: _initial_mapping,
}


def initial_draw(key, proposal):
    """
    Draw starting parameters from proposal when none are supplied.

    Lists give an array (when every element has the same shape), tuples a
    tuple and dicts a dict.
    """
    return _lookup(_INITIAL_REGISTRY, proposal)(key, proposal)


# ============================================================================
# LOG PROPOSAL DENSITY RATIO
# ============================================================================

def _logratio_leaf(proposal, state, candidate):
    expanded = expand(proposal)
    if expanded is not proposal:
        return logratio_proposal_density(expanded, state, candidate)
    return proposal.logratio(state, candidate)


def _logratio_sequence(proposals, state, candidate):
    states = _sequence_elements(proposals, state)
    candidates = _sequence_elements(proposals, candidate)
    return sum(
        logratio_proposal_density(p, s, c)
        for p, s, c in zip(proposals, states, candidates)
    )


def _logratio_mapping(proposals, state, candidate):
    states = _mapping_elements(proposals, state)
    candidates = _mapping_elements(proposals, candidate)
    return sum(
        logratio_proposal_density(p, s, c)
        for p, s, c in zip(proposals.values(), states, candidates)
    )


_LOGRATIO_REGISTRY = {
    Proposal: _logratio_leaf,
    list: _logratio_sequence,
    tuple: _logratio_sequence,
    dict: _logratio_mapping,
}


def logratio_proposal_density(proposal, state, candidate):
    """
    log q(state | candidate) - log q(candidate | state).

    Exactly 0 for symmetric leaves, whose distributions are never asked for
    a density. Composites return the sum over their children.

    Raises:
        CapabilityError: An asymmetric leaf's distribution has no log_prob.
    """
    return _lookup(_LOGRATIO_REGISTRY, proposal)(proposal, state, candidate)


def is_symmetric(proposal: Any) -> bool:
    """True iff every leaf of proposal is declared symmetric."""
    proposal = expand(proposal)
    if isinstance(proposal, Proposal):
        return proposal.symmetric
    children = proposal.values() if isinstance(proposal, dict) else proposal
    return all(is_symmetric(p) for p in children)
