"""Project metadata shared by the runtime and the packaging configuration."""

from __future__ import annotations

__version__ = "1.0.0"
