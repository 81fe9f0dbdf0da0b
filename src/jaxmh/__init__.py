"""
jaxmh - Metropolis-Hastings Sampling Engine for JAX

Public API:
    Models:
        DensityModel - Wrap a log-density function (optional gradient)
        DifferentiableDensityModel - DensityModel with an autodiff gradient
        LogDensityModel - Wrap a log-density-problem object
        ad_gradient - Add an autodiff gradient to a density-only model

    Proposals:
        StaticProposal, RandomWalkProposal - Leaf proposals
        SymmetricStaticProposal, SymmetricRandomWalkProposal - Symmetric leaves
        propose, initial_draw, logratio_proposal_density - Structural operations
            over leaves, lists, tuples and dicts of proposals

    Kernels:
        MetropolisHastings, StaticMH, RWMH - Metropolis-Hastings
        MALA, langevin_proposal - Metropolis-adjusted Langevin

    Transitions:
        Transition, GradientTransition - Per-step records
        get_params, set_params - Parameter access / pure replacement

    Sampling:
        sample - Run chains of a kernel against a model
        sample_from_config - Same, from a config dict
        Chain - Sampling output
        KernelKind, ExecutionMode - Config enums

    Errors:
        ConfigurationError, CapabilityError

Example:
    import jax.numpy as jnp
    import numpyro.distributions as dist
    from jaxmh import DensityModel, StaticMH, sample

    model = DensityModel(lambda x: dist.Normal(0.0, 1.0).log_prob(x))
    chain = sample(model, StaticMH(dist.Normal(0.0, 2.0)), 10_000, rng_seed=0)
    chain.mean('param_1')
"""
# CRITICAL: Import jax_config FIRST to set environment variables before JAX loads
from . import jax_config  # noqa: F401

from .error_handling import (
    ConfigurationError,
    CapabilityError,
    validate_sample_config,
    diagnose_chain,
    print_diagnostics,
)
from .settings import KernelKind, ExecutionMode, SAMPLE_DEFAULTS
from .types import Transition, GradientTransition, RunParams, get_params, set_params
from .model import (
    DensityModel,
    DifferentiableDensityModel,
    LogDensityModel,
    ad_gradient,
)
from .proposals import (
    StaticProposal,
    RandomWalkProposal,
    SymmetricStaticProposal,
    SymmetricRandomWalkProposal,
    propose,
    initial_draw,
    logratio_proposal_density,
    is_symmetric,
)
from .kernels import (
    MetropolisHastings,
    StaticMH,
    RWMH,
    MALA,
    langevin_proposal,
)
from .chain import Chain

# Main sampling entry points
from .sampling import (
    sample,
    sample_from_config,
    build_kernel,
)
