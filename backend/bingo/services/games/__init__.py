"""Game domain services: cards, patterns, draws, ledger and sessions.

HTTP routes and socket handlers import from here, keeping transport
concerns separated from core game mechanics.
"""
