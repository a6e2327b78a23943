"""
FinPulse - Financial Signal & Scoring Pipeline

Rule-based financial intelligence for a personal-finance application:
health scores, trend analysis, signal detection, early-warning alerts
and follow-up tasks, computed over a user's ledger.

DESIGN PRINCIPLES:
1. Every calculation is a pure function of the ledger slice it reads
2. Derived records are append-only (snapshots, trend periods, insights)
3. Every read and write is scoped to a single user
4. Every pipeline step is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "FinPulse Team"
