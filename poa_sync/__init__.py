"""Incremental Gmail → Google Sheets sync for POA approval emails."""

__version__ = "0.1.0"
