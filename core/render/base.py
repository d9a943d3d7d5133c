"""Template renderer interface."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol


class TemplateRenderer(Protocol):
    """Turns canonical field values into artifact bytes."""

    extension: str

    def render(self, fields: Mapping[str, str]) -> bytes:
        """Render one artifact for ``fields``."""
