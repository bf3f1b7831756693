"""Error types raised by the diagram pipeline."""

from __future__ import annotations


class DiagramError(Exception):
    """Base class for every failure the diagram turns into its Failed state."""


class FetchError(DiagramError):
    """Network failure or non-2xx response from the workflow API."""


class FetchTimeout(FetchError):
    """The workflow API did not answer before the timeout elapsed."""


class MalformedInput(DiagramError):
    """The step data does not have the expected shape."""


class LayoutError(DiagramError):
    """Layout computation failed."""
