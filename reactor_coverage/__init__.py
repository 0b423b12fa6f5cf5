"""Cross-module coverage reports for multi-module Python workspaces."""

__version__ = "0.1.0"
