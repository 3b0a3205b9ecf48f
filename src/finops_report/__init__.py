"""Previous-month and month-to-date AWS cost report."""

__version__ = "0.1.0"
