"""
Expense Ledger - Source Package

A personal expense tracker whose system of record is one Google Sheets
spreadsheet. Expenses, categories, budgets and settings are read and
written through a small ledger access layer; AI features are single-shot
Gemini prompts and a proxied Perplexity chat.

DESIGN PRINCIPLES:
1. The spreadsheet is the only store
2. Reads say whether they failed; writes raise
3. Configuration is built once and passed in
4. Every change is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Expense Ledger Team"
