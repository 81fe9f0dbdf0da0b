"""
Error Types, Validation and Diagnostics for Metropolis-Hastings Sampling

Error taxonomy:
    ConfigurationError - the sampler was set up in a way that cannot run
        (e.g. a gradient-based kernel without initial parameters, a bad
        thinning interval). Raised before any computation.
    CapabilityError - a model or proposal distribution lacks an operation the
        kernel needs (density evaluation for an asymmetric proposal, gradient
        evaluation for MALA). Raised where the capability is first needed,
        never replaced by a degraded computation.

An out-of-support point is NOT an error: it is a -inf log density and is
handled by the acceptance arithmetic.
"""

from typing import Any, Dict, List

import numpy as np

from .settings import KernelKind, ExecutionMode

import logging
logger = logging.getLogger('jaxmh')


class ConfigurationError(ValueError):
    """Sampler configuration cannot be run."""


class CapabilityError(TypeError):
    """A model or distribution lacks a required evaluation capability."""


def missing_capability(obj: Any, capability: str, needed_by: str) -> CapabilityError:
    """Build a CapabilityError naming the object, the capability and its consumer."""
    return CapabilityError(
        f"{type(obj).__name__} does not provide '{capability}', "
        f"which is required by {needed_by}"
    )


def validate_sample_config(config: Dict[str, Any]) -> None:
    """
    Validates that a sampling configuration is sensible.

    All problems are collected and reported together.

    Args:
        config: Configuration dictionary (lowercase keys, see SAMPLE_DEFAULTS)

    Raises:
        ConfigurationError: If configuration is invalid
    """
    errors = []

    for key in ('kernel', 'proposal', 'num_samples'):
        if config.get(key) is None:
            errors.append(f"Missing required config key: '{key}'")

    kernel = config.get('kernel')
    if kernel is not None:
        try:
            kernel = KernelKind.parse(kernel)
        except ValueError as e:
            errors.append(str(e))
            kernel = None

    errors.extend(_run_errors(config))

    if kernel is KernelKind.MALA and config.get('initial_params') is None:
        errors.append("initial_params are required for the MALA kernel")

    if errors:
        raise ConfigurationError("Invalid sampling configuration:\n  " + "\n  ".join(errors))


def validate_run_config(config: Dict[str, Any]) -> None:
    """
    Validates the run-shape keys only (num_samples, discard_initial,
    thinning, num_chains, execution).

    Raises:
        ConfigurationError: If any of them is invalid
    """
    errors = _run_errors(config)
    if errors:
        raise ConfigurationError("Invalid sampling configuration:\n  " + "\n  ".join(errors))


def _run_errors(config: Dict[str, Any]) -> List[str]:
    errors = []

    if 'execution' in config:
        try:
            ExecutionMode.parse(config['execution'])
        except ValueError as e:
            errors.append(str(e))

    num_samples = config.get('num_samples')
    if num_samples is not None and (not _is_int(num_samples) or num_samples < 1):
        errors.append(f"num_samples must be a positive integer, got {num_samples!r}")

    discard = config.get('discard_initial', 0)
    if not _is_int(discard) or discard < 0:
        errors.append(f"discard_initial must be a non-negative integer, got {discard!r}")

    thinning = config.get('thinning', 1)
    if not _is_int(thinning) or thinning < 1:
        errors.append(f"thinning must be a positive integer, got {thinning!r}")

    num_chains = config.get('num_chains', 1)
    if not _is_int(num_chains) or num_chains < 1:
        errors.append(f"num_chains must be a positive integer, got {num_chains!r}")

    return errors


def _is_int(value: Any) -> bool:
    return isinstance(value, (int, np.integer)) and not isinstance(value, bool)


def diagnose_chain(chain, diagnostics: Dict[str, Any] = None) -> Dict[str, Any]:
    """
    Analyzes a sampled Chain to identify common issues.

    Args:
        chain: Chain returned by jaxmh.sample
        diagnostics: Existing diagnostics dict to extend

    Returns:
        diagnostics: Dictionary with issues, warnings, and info
    """
    diagnostics = (diagnostics or {}) | {
        'issues': [],
        'warnings': [],
        'info': []
    }

    flat = chain.flat_params()  # (n_chains, n_samples, n_flat_params)
    lp = np.asarray(chain.lp)

    if not np.all(np.isfinite(flat)):
        diagnostics['issues'].append(
            "Samples contain NaN or Inf values - the model or proposal became unstable"
        )
    if not np.any(np.isfinite(lp)):
        diagnostics['issues'].append(
            "No retained sample has a finite log density - chains never entered the support"
        )

    # Stuck chains: every parameter has near-zero variance along the chain
    if flat.shape[1] > 1:
        chain_vars = np.var(flat, axis=1)
        stuck_chains = int(np.sum(np.all(chain_vars < 1e-12, axis=1)))
        if stuck_chains > 0:
            diagnostics['warnings'].append(
                f"{stuck_chains} chain(s) appear stuck (near-zero variance)"
            )

    rates = np.atleast_1d(chain.acceptance_rate)
    if np.any(rates < 0.05):
        diagnostics['warnings'].append(
            f"Acceptance rate below 5% in {int(np.sum(rates < 0.05))} chain(s) - proposal too wide?"
        )
    if np.any(rates > 0.95):
        diagnostics['warnings'].append(
            f"Acceptance rate above 95% in {int(np.sum(rates > 0.95))} chain(s) - proposal too narrow?"
        )

    diagnostics['info'].append(f"Samples per chain: {flat.shape[1]}")
    diagnostics['info'].append(f"Number of chains: {flat.shape[0]}")
    diagnostics['info'].append(f"Number of parameters: {flat.shape[2]}")
    diagnostics['info'].append(f"Mean acceptance rate: {float(np.mean(rates)):.1%}")

    return diagnostics


def print_diagnostics(diagnostics: Dict[str, Any]) -> None:
    """Log diagnostics from diagnose_chain."""
    if diagnostics['issues']:
        logger.error("[ERROR] ISSUES:")
        for issue in diagnostics['issues']:
            logger.error(f"  - {issue}")

    if diagnostics['warnings']:
        logger.warning("[WARN] WARNINGS:")
        for warning in diagnostics['warnings']:
            logger.warning(f"  - {warning}")

    if diagnostics['info']:
        logger.info("[INFO] INFO:")
        for info in diagnostics['info']:
            logger.info(f"  - {info}")

    if not diagnostics['issues'] and not diagnostics['warnings']:
        logger.info("[OK] No issues detected")
