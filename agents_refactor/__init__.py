"""Multi-file TypeScript refactoring driven by tsserver."""

__version__ = "0.1.0"
