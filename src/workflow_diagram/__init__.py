"""workflow-diagram — interactive layered diagrams of workflow step lists."""

__version__ = "0.1.0"
