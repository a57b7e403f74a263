"""esploracli: resilient read-only client for Esplora block-explorer APIs."""

__version__ = "0.1.0"
