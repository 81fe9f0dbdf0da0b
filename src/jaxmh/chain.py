"""
Chain - host-side container for sampled transitions.

Holds the stacked transitions of one sampling call, moved to host memory as
numpy arrays. Every transition field has leading axes (n_chains, n_samples).

Column naming:
    dict parameters      -> the dict keys ('a', 'b'; 'w[0]', 'w[1]' for vectors)
    anything else        -> param_names if given, else 'param_1', 'param_2', ...
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import jax
import numpy as np

from .types import RunParams


@dataclass(frozen=True)
class Chain:
    """
    Sampling output.

    Fields:
        transitions: Stacked Transition/GradientTransition pytree (numpy leaves,
                     leading axes (n_chains, n_samples))
        iterations: 1-based raw iteration number of every retained sample
        run_params: RunParams of the call that produced this chain
        param_names: Optional names for non-dict parameters
    """
    transitions: Any
    iterations: np.ndarray
    run_params: RunParams
    param_names: Optional[Tuple[str, ...]] = None

    # --- shape ---

    @property
    def n_chains(self) -> int:
        return int(np.shape(self.transitions.lp)[0])

    @property
    def n_samples(self) -> int:
        return int(np.shape(self.transitions.lp)[1])

    def __len__(self) -> int:
        return self.n_samples

    # --- raw fields ---

    @property
    def params(self):
        return self.transitions.params

    @property
    def lp(self) -> np.ndarray:
        return np.asarray(self.transitions.lp)

    @property
    def accepted(self) -> np.ndarray:
        return np.asarray(self.transitions.accepted)

    @property
    def acceptance_rate(self) -> np.ndarray:
        """
        Fraction of accepted transitions per chain, shape (n_chains,).

        The initial transition (raw iteration 1) is always marked accepted and
        is left out. NaN when it is the only retained sample.
        """
        steps = np.asarray(self.iterations) > 1
        if not np.any(steps):
            return np.full(self.n_chains, np.nan)
        return np.mean(self.accepted[:, steps].astype(np.float64), axis=1)

    # --- named columns ---

    def columns(self) -> Dict[str, np.ndarray]:
        """Parameter columns by name, each of shape (n_chains, n_samples)."""
        params = self.params
        n_chains, n_samples = self.n_chains, self.n_samples
        cols = {}
        if isinstance(params, dict):
            for key, value in params.items():
                flat = np.asarray(value).reshape(n_chains, n_samples, -1)
                if np.ndim(value) == 2:
                    cols[str(key)] = flat[..., 0]
                else:
                    for j in range(flat.shape[-1]):
                        cols[f"{key}[{j}]"] = flat[..., j]
            return cols

        flat = self.flat_params()
        names = self.param_names or tuple(f"param_{j + 1}" for j in range(flat.shape[-1]))
        if len(names) != flat.shape[-1]:
            raise ValueError(
                f"{len(names)} param_names given for {flat.shape[-1]} parameters"
            )
        for j, name in enumerate(names):
            cols[name] = flat[..., j]
        return cols

    def names(self) -> List[str]:
        return list(self.columns().keys())

    def flat_params(self) -> np.ndarray:
        """All parameters flattened to shape (n_chains, n_samples, n_params)."""
        n_chains, n_samples = self.n_chains, self.n_samples
        leaves = jax.tree_util.tree_leaves(self.params)
        return np.concatenate(
            [np.asarray(leaf).reshape(n_chains, n_samples, -1) for leaf in leaves], axis=-1
        )

    def __getitem__(self, key):
        """
        chain['mu'] -> samples of 'mu' (shape (n_samples,) for one chain,
                       (n_chains, n_samples) otherwise)
        chain[i]    -> Transition of sample i of the first chain
        """
        if isinstance(key, str):
            cols = self.columns()
            if key not in cols:
                raise KeyError(f"Unknown parameter '{key}' (have {list(cols)})")
            col = cols[key]
            return col[0] if self.n_chains == 1 else col
        return self.transition(key)

    def transition(self, index: int, chain: int = 0):
        """Single transition record (sample index, chain index)."""
        return jax.tree_util.tree_map(lambda leaf: np.asarray(leaf)[chain, index], self.transitions)

    def __iter__(self):
        for i in range(self.n_samples):
            yield self.transition(i)

    def mean(self, name: str) -> float:
        return float(np.mean(self.columns()[name]))

    def std(self, name: str) -> float:
        return float(np.std(self.columns()[name]))

    def to_records(self, chain: int = 0) -> List[Dict[str, float]]:
        """One dict per sample: parameter columns followed by 'lp'."""
        cols = self.columns()
        lp = self.lp[chain]
        return [
            {**{name: float(col[chain, i]) for name, col in cols.items()}, 'lp': float(lp[i])}
            for i in range(self.n_samples)
        ]

