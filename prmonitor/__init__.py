"""PR Monitor: a local, continuously-correct view of pull requests that need your review."""

__version__ = "0.1.0"
