"""
Reagent Ledger

Stock ledger for laboratory reagent inventory:
- Lots created on first stock-in, incremented afterwards
- Append-only movement history per lot
- Reagent totals derived from active lots in the same transaction
- Soft deletion with write-off movements
"""

__version__ = "0.1.0"
