"""FocusLedger: focus-session log with daily rollups and behavior features."""

__version__ = "0.1.0"
