"""branchboard: a markdown task board reconciled across git branches."""

__version__ = "0.3.0"
