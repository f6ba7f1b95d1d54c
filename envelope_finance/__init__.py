"""
Envelope Finance - Source Package

A personal finance tracker built around envelope budgeting: every income
is split across four spending envelopes (Living 40%, Ops/Study 30%,
Savings 20%, Social 10%), and expenses draw down the matching envelope.

DESIGN PRINCIPLES:
1. Budgets are derived, never stored
2. Every read and write is scoped to an explicit session
3. Provider failures reach the caller as typed errors
4. Every change is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Envelope Finance Team"
