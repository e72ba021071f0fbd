"""vcsbridge: GitHub webhook reconciliation and automation dispatch."""

__version__ = "0.1.0"

__all__ = ["__version__"]
