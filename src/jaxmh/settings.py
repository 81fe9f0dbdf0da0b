"""
Sampler settings: kernel kinds, execution modes and configuration defaults.

All config keys use lowercase with underscores (e.g. 'num_chains',
'discard_initial'). clean_config fills in SAMPLE_DEFAULTS without touching
values the user supplied.
"""

from enum import Enum, IntEnum
from typing import Any, Dict


class KernelKind(IntEnum):
    """
    Enumeration of available transition kernels.
    """
    STATIC = 0       # MH with candidates drawn independently of the current state
    RANDOM_WALK = 1  # MH with candidates = current + step
    MALA = 2         # Metropolis-adjusted Langevin (gradient-based)

    def __str__(self):
        return self.name.replace('_', ' ').title()

    @classmethod
    def parse(cls, value) -> 'KernelKind':
        """Accept a KernelKind, its int value, or its lowercase name."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip().upper().replace('-', '_')
            if key in cls.__members__:
                return cls[key]
        elif isinstance(value, int) and value in cls._value2member_map_:
            return cls(value)
        names = ', '.join(m.name.lower() for m in cls)
        raise ValueError(f"Unknown kernel '{value}' (expected one of: {names})")


class ExecutionMode(str, Enum):
    """
    How independent chains are run.

    Chains never share mutable state; each owns its RNG key and its
    history, and results are combined only after every chain finishes.
    """
    SERIAL = 'serial'          # One chain after another in this thread
    THREADS = 'threads'        # Thread pool, one compiled run per chain
    VECTORIZED = 'vectorized'  # jax.vmap over chains inside one compiled run
    DISTRIBUTED = 'distributed'  # jax.pmap across local devices

    @classmethod
    def parse(cls, value) -> 'ExecutionMode':
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            names = ', '.join(m.value for m in cls)
            raise ValueError(f"Unknown execution mode '{value}' (expected one of: {names})") from None


# Default values for each config key
SAMPLE_DEFAULTS = {
    'discard_initial': 0,
    'thinning': 1,
    'num_chains': 1,
    'execution': ExecutionMode.SERIAL,
    'rng_seed': 42,
    'use_double': False,
    'initial_params': None,
    'param_names': None,
}


def clean_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Return a copy of config with lowercase keys and defaults filled in.
    """
    cleaned = {str(k).lower(): v for k, v in config.items()}
    for key, default in SAMPLE_DEFAULTS.items():
        cleaned.setdefault(key, default)
    return cleaned
