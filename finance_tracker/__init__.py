"""
Finance Tracker - Reconciliation Engine

The core of a personal finance tracker: it turns a raw, messy list of
income/expense transactions into consistent monthly financial metrics.

DESIGN PRINCIPLES:
1. AI suggests → Human confirms → Rules remember
2. Derived numbers are pure functions of the stored data
3. Never double-count a recurring bill or a credit-card payment
4. External failures never corrupt the local store
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Finance Tracker Team"
