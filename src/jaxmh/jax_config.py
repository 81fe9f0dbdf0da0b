"""
JAX Environment Setup - MUST be imported before any JAX imports.

Sets environment defaults that JAX only reads at import time:
- Persistent compilation cache directory (sampling loops are compiled once
  per model/kernel/run-shape and reused across sessions)
- Minimum compile time threshold for caching
- XLA C++ log level

Every value uses os.environ.setdefault, so anything the user exported
before importing jaxmh wins.
"""
import os
from pathlib import Path

# --- XLA LOGGING ---
# Suppress CUDA/XLA C++ warnings; does not affect Python-side logging
os.environ.setdefault("TF_CPP_MIN_LOG_LEVEL", "2")

# --- PERSISTENT COMPILATION CACHE ---
_JAX_CACHE_DIR = Path(
    os.environ.get("JAXMH_CACHE_DIR", Path.home() / ".cache" / "jax" / "jaxmh_cache")
)
try:
    _JAX_CACHE_DIR.mkdir(parents=True, exist_ok=True)
except OSError:
    # Read-only home (CI containers); JAX then runs without a persistent cache
    pass
else:
    os.environ.setdefault("JAX_COMPILATION_CACHE_DIR", str(_JAX_CACHE_DIR))
    os.environ.setdefault("JAX_PERSISTENT_CACHE_MIN_COMPILE_TIME_SECS", "1.0")
