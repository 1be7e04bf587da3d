"""BikerHUB e-commerce API."""

__version__ = "2.0.0"
