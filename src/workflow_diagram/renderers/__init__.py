"""Static renderers and interactive surfaces for laid-out workflows."""
