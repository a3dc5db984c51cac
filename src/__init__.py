"""
Expense Tracker - Source Package

The data-model-and-mutation-rules core of a personal/group expense
tracking app: users sign in, belong to groups, and log expenses
tagged with categories and completion status.

DESIGN PRINCIPLES:
1. Every mutation commits fully or not at all
2. Fail early, fail visibly
3. Money is integer cents, never floats
4. Every mutation is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Expense Tracker Team"
