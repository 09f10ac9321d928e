"""
DailyMoney - Jar Ledger Package

A personal finance tracker built on the "6 Jars" budgeting method.
Income is split across six purpose-tagged jars by fixed percentages,
expenses are debited from a jar, and free-form text can be classified
into income/expense records by an AI model.

DESIGN PRINCIPLES:
1. Jar state changes only through signed deltas (never overwrites)
2. Validate before any write
3. No silent corrections (the AI never picks a jar for you)
4. Every mutation is auditable
5. Storage is injected, never global
"""

__version__ = "1.0.0"
__author__ = "DailyMoney Team"
