"""
Asset Kernel

Shared infrastructure for the asset lifecycle and depreciation engine:
- Declarative ORM base with UUID keys and audit columns
- Transaction scope and unit-of-work helpers
- Typed exception hierarchy with machine-readable codes
- Structured JSON logging
- Injectable clock
"""

__version__ = "0.1.0"
