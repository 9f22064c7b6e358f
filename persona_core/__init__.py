"""persona-core: conversational synthesis and associative memory runtime."""

__version__ = "0.4.0"

__all__ = [
    "__version__",
    "benchmarks",
    "chunking",
    "config",
    "exceptions",
    "runtime",
]
