"""
Stockbook Kernel

Shared foundation for the inventory-costing and ledger engine:
- Typed, code-carrying exceptions
- Structured JSON logging
- Decimal-only Money and quantity coercion
- Immutable domain records with JSON-safe serialization
"""

__version__ = "0.1.0"
