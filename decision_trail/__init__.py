"""Decision trail capture for multi-stage selection pipelines."""

__version__ = "0.1.0"
