"""
Benchmarks - Memory recall and delivery timing checks

WHAT: Reproducible benchmarks over the deterministic embedding and timing model
WHERE: persona_core/benchmarks/ - runnable with ``python -m``
WHO: CI and developers validating retrieval weights and timing bounds
TIME: <1s each
"""

__all__ = ["recall", "timing"]
