"""
Canteen delivery ledger.

Reads weekly meal-order PDFs, stores one delivery row per school site,
week and regime, and reports totals per school and per territory.
"""

__version__ = "0.1.0"
