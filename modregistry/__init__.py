# modregistry/__init__.py
"""Community registry of mod manifests: validation, discovery, reconciliation and autoupdate."""
from __future__ import annotations

__version__ = "0.1.0"

__all__ = ["__version__"]
