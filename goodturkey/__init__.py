"""goodturkey - block distracting websites, with a cooling-off period to unblock."""

__version__ = "0.1.0"
