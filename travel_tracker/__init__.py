"""
Travel Tracker - Source Package

A personal travel-expense dashboard: upload ride receipts, let an AI model
extract the fields, and track monthly spend against an allowance.

DESIGN PRINCIPLES:
1. The AI extracts, deterministic code decides
2. One bad file never sinks a batch
3. Derived numbers are recomputed, never stored
4. Every step must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Travel Tracker Team"
