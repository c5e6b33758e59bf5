"""
Common building blocks for the quote widget.

Modules:
- quotes: pure functions (filter, random pick, categories, merge)
- placeholder: remote quote endpoint client
- transfer: JSON export/import
- notices: user-facing alerts and notices
- config: environment configuration
"""

__all__ = [
    "config",
    "notices",
    "placeholder",
    "quotes",
    "transfer",
]
