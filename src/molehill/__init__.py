"""molehill - local disk usage dashboard for the Mole maintenance CLI."""

__version__ = "0.3.0"
