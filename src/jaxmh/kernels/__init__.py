"""
Transition kernels.

Every kernel exposes:
    init(key, model, initial_params=None) -> first transition
    step(key, model, transition) -> next transition
    requires_initial_params (class attribute)

- metropolis: MetropolisHastings, StaticMH, RWMH, mh_accept
- langevin: MALA, langevin_proposal
"""

from .metropolis import MetropolisHastings, StaticMH, RWMH, mh_accept
from .langevin import MALA, langevin_proposal

__all__ = [
    'MetropolisHastings',
    'StaticMH',
    'RWMH',
    'mh_accept',
    'MALA',
    'langevin_proposal',
]
