"""Feature modules for :mod:`bundlesplit` (extract, naming, export, loader)."""
