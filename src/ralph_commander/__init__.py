"""Ralph Commander: control plane for an autonomous coding-agent loop."""

__version__ = "0.1.0"

__all__ = ["__version__"]
