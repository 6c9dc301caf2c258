"""Course Music Manager: pair course recordings with songs in fixed slots."""

__version__ = "1.0.0"
