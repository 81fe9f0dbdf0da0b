"""
Proposal Distributions for Metropolis-Hastings Sampling

Leaf proposals (base.py) wrap a distribution-like object or a function of
the current state:
    StaticProposal, RandomWalkProposal
    SymmetricStaticProposal, SymmetricRandomWalkProposal

Composite proposals are plain lists, tuples and dicts of leaves; the
structural operations in composite.py recurse over them:
    propose, initial_draw, logratio_proposal_density, is_symmetric

Symmetric leaves contribute exactly zero to the Hastings ratio without
evaluating any density; asymmetric leaves contribute
log q(state | candidate) - log q(candidate | state).
"""

from .base import (
    Proposal,
    StaticProposal,
    RandomWalkProposal,
    SymmetricStaticProposal,
    SymmetricRandomWalkProposal,
    is_distribution,
)
from .composite import (
    expand,
    propose,
    initial_draw,
    logratio_proposal_density,
    is_symmetric,
)

__all__ = [
    'Proposal',
    'StaticProposal',
    'RandomWalkProposal',
    'SymmetricStaticProposal',
    'SymmetricRandomWalkProposal',
    'is_distribution',
    'expand',
    'propose',
    'initial_draw',
    'logratio_proposal_density',
    'is_symmetric',
]
