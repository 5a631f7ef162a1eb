"""
Dutch Auction Settlement

A single-lot Dutch auction program executed atomically by a ledger:
- Linear, buyer-favoring price decay driven by an external clock
- Escrow under a keyless, program-derived authority
- Exactly-once settlement or cancellation per auction record
"""

__version__ = "0.1.0"
