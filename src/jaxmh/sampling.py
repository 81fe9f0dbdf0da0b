"""
Sampling Driver - runs a kernel for a fixed number of iterations.

Entry points:
- sample: Run one or more chains of a kernel against a model
- sample_from_config: Same, driven by a lowercase-keyed config dict
- build_kernel: Kernel construction from (KernelKind, proposal)

Helper functions:
- _build_chain_runner: Single-chain function (key -> stacked history),
  a lax.scan over retained samples with a fori_loop of `thinning` steps
- _run_chains: Dispatch over ExecutionMode
- _transfer_to_host: Move results from device to host

Iteration bookkeeping: the initial transition is raw iteration 1. With
discard_initial D and thinning T the retained iterations are
D + 1, D + 1 + T, D + 1 + 2T, ... (n_samples of them).

Each chain owns one key from split(key, n_chains); inside a chain every
step splits its carry key into (next carry key, step key). Chains share no
mutable state and are combined only after all of them finished. Errors
(ConfigurationError, CapabilityError, anything raised by the model) abort
the whole call and no partial output is returned.
"""

import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Optional, Sequence

import jax
import jax.numpy as jnp
import jax.random as random
import numpy as np

from .chain import Chain
from .error_handling import ConfigurationError, validate_run_config, validate_sample_config
from .kernels import MALA, RWMH, StaticMH, langevin_proposal
from .model import as_model
from .settings import ExecutionMode, KernelKind, clean_config
from .types import RunParams, as_params

import logging
logger = logging.getLogger('jaxmh')

__all__ = [
    'sample',
    'sample_from_config',
    'build_kernel',
]


# =============================================================================
# SINGLE CHAIN
# =============================================================================

def _build_chain_runner(model, kernel, initial_params, run_params: RunParams):
    """
    Build the per-chain sampling function.

    Returns:
        run(key) -> stacked transitions with leading axis N_SAMPLES
    """
    n_samples = run_params.N_SAMPLES
    discard = run_params.DISCARD_INITIAL
    thinning = run_params.THINNING

    def one_step(carry):
        transition, key = carry
        key, step_key = random.split(key)
        return kernel.step(step_key, model, transition), key

    def advance(carry, n_steps):
        if n_steps == 0:
            return carry
        if n_steps == 1:
            return one_step(carry)
        return jax.lax.fori_loop(0, n_steps, lambda i, c: one_step(c), carry)

    def run(key):
        init_key, key = random.split(key)
        first = kernel.init(init_key, model, initial_params)
        carry = advance((first, key), discard)
        kept_first = carry[0]

        def scan_body(carry, _):
            carry = advance(carry, thinning)
            return carry, carry[0]

        if n_samples == 1:
            return jax.tree_util.tree_map(lambda x: x[None], kept_first)

        _, rest = jax.lax.scan(scan_body, carry, None, length=n_samples - 1)
        return jax.tree_util.tree_map(
            lambda a, b: jnp.concatenate([a[None], b], axis=0), kept_first, rest
        )

    return run


# =============================================================================
# MULTIPLE CHAINS
# =============================================================================

def _run_chains(run, keys, execution: ExecutionMode):
    """
    Run one chain per key according to execution.

    Returns:
        Stacked histories with leading axes (n_chains, n_samples)
    """
    n_chains = keys.shape[0]

    if execution is ExecutionMode.VECTORIZED:
        return jax.jit(jax.vmap(run))(keys)

    if execution is ExecutionMode.DISTRIBUTED:
        n_devices = jax.local_device_count()
        pmapped = jax.pmap(run)
        chunks = [
            pmapped(keys[start:start + n_devices])
            for start in range(0, n_chains, n_devices)
        ]
        return jax.tree_util.tree_map(lambda *xs: jnp.concatenate(xs, axis=0), *chunks)

    # Compile once, then reuse the executable for every chain
    compiled = jax.jit(run).lower(keys[0]).compile()

    if execution is ExecutionMode.THREADS and n_chains > 1:
        with ThreadPoolExecutor(max_workers=n_chains) as pool:
            histories = list(pool.map(lambda k: jax.block_until_ready(compiled(k)), keys))
    else:
        histories = [compiled(k) for k in keys]
    return jax.tree_util.tree_map(lambda *xs: jnp.stack(xs), *histories)


def _transfer_to_host(history):
    """Move stacked results from device to host numpy arrays."""
    history = jax.device_get(history)
    return jax.tree_util.tree_map(np.asarray, history)


def _resolve_key(key, rng_seed: int):
    if key is not None:
        return key
    return random.PRNGKey(rng_seed)


# =============================================================================
# PUBLIC ENTRY POINTS
# =============================================================================

def sample(
    model,
    kernel,
    n_samples: int,
    *,
    key=None,
    rng_seed: int = 42,
    initial_params=None,
    discard_initial: int = 0,
    thinning: int = 1,
    n_chains: int = 1,
    execution=ExecutionMode.SERIAL,
    param_names: Optional[Sequence[str]] = None,
) -> Chain:
    """
    Sample from model with kernel.

    Args:
        model: Model adapter (DensityModel, LogDensityModel, ...), a bare
               log-density function, or a log-density-problem object
        kernel: MetropolisHastings or MALA kernel
        n_samples: Number of retained samples per chain
        key: JAX PRNGKey; overrides rng_seed
        rng_seed: Seed used when key is None
        initial_params: Starting parameters shared by every chain. Required
                        by kernels with requires_initial_params (MALA)
        discard_initial: Raw iterations dropped before the first retained one
        thinning: Interval between retained raw iterations
        n_chains: Number of independent chains
        execution: ExecutionMode or its name ('serial', 'threads',
                   'vectorized', 'distributed')
        param_names: Column names for non-dict parameters

    Returns:
        Chain with n_chains x n_samples transitions

    Raises:
        ConfigurationError: Invalid run configuration, or missing initial
                            params for a kernel that needs them (raised
                            before any random draw or model evaluation)
        CapabilityError: The model or proposal lacks a needed capability
    """
    validate_run_config({
        'num_samples': n_samples,
        'discard_initial': discard_initial,
        'thinning': thinning,
        'num_chains': n_chains,
        'execution': execution,
    })
    if getattr(kernel, 'requires_initial_params', False) and initial_params is None:
        raise ConfigurationError(
            f"{type(kernel).__name__} requires initial_params; none were given"
        )

    execution = ExecutionMode.parse(execution)
    model = as_model(model)
    run_params = RunParams(
        N_SAMPLES=int(n_samples),
        DISCARD_INITIAL=int(discard_initial),
        THINNING=int(thinning),
        N_CHAINS=int(n_chains),
        EXECUTION=execution.value,
    )
    if initial_params is not None:
        initial_params = as_params(initial_params)

    logger.info(
        f"Sampling {run_params.N_CHAINS} chain(s) x {run_params.N_SAMPLES} samples "
        f"with {type(kernel).__name__} (discard_initial={run_params.DISCARD_INITIAL}, "
        f"thinning={run_params.THINNING}, execution={run_params.EXECUTION})"
    )
    logger.debug(f"JAX backend: {jax.default_backend()}")

    run = _build_chain_runner(model, kernel, initial_params, run_params)
    keys = random.split(_resolve_key(key, rng_seed), run_params.N_CHAINS)

    start_time = time.perf_counter()
    history = jax.block_until_ready(_run_chains(run, keys, execution))
    wall_time = time.perf_counter() - start_time
    logger.info(
        f"  Wall time: {wall_time:.2f}s for {run_params.total_iterations} iterations per chain"
    )

    chain = Chain(
        transitions=_transfer_to_host(history),
        iterations=np.asarray(run_params.retained_iterations(), dtype=np.int64),
        run_params=run_params,
        param_names=tuple(param_names) if param_names is not None else None,
    )
    rates = chain.acceptance_rate
    logger.info(
        f"  Acceptance rate: mean {np.mean(rates):.1%}  "
        f"min {np.min(rates):.1%}  max {np.max(rates):.1%}"
    )
    return chain


def build_kernel(kind, proposal):
    """
    Kernel for a KernelKind.

    Args:
        kind: KernelKind or its name
        proposal: For STATIC / RANDOM_WALK anything StaticMH / RWMH accept
                  (int dimension, distribution, function, container, proposals).
                  For MALA either a proposal_fn(gradient) or a positive step size
                  for langevin_proposal.
    """
    kind = KernelKind.parse(kind)
    if kind is KernelKind.STATIC:
        return StaticMH(proposal)
    if kind is KernelKind.RANDOM_WALK:
        return RWMH(proposal)
    if callable(proposal):
        return MALA(proposal)
    return MALA(langevin_proposal(float(proposal)))


def sample_from_config(model, config: Dict[str, Any]) -> Chain:
    """
    Sample using a configuration dict.

    Recognized keys (lowercase):
        kernel          'static' | 'random_walk' | 'mala'          (required)
        proposal        see build_kernel                            (required)
        num_samples     retained samples per chain                  (required)
        initial_params  starting parameters (required for 'mala')
        discard_initial default 0
        thinning        default 1
        num_chains      default 1
        execution       'serial' | 'threads' | 'vectorized' | 'distributed'
        rng_seed        default 42
        use_double      enable float64 (default False)
        param_names     column names for the output Chain

    Raises:
        ConfigurationError: Listing every problem found in config
    """
    config = clean_config(config)
    validate_sample_config(config)

    # Configure JAX precision
    jax.config.update("jax_enable_x64", bool(config['use_double']))

    kernel = build_kernel(config['kernel'], config['proposal'])
    return sample(
        model,
        kernel,
        config['num_samples'],
        rng_seed=config['rng_seed'],
        initial_params=config['initial_params'],
        discard_initial=config['discard_initial'],
        thinning=config['thinning'],
        n_chains=config['num_chains'],
        execution=config['execution'],
        param_names=config['param_names'],
    )
