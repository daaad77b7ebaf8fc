"""
Purchasing Kernel

Shared foundation for the purchase order lifecycle engine:
- Typed exceptions with machine-readable codes
- Structured JSON logging
- Injectable clock
- Workflow value objects and status enums
- SQLAlchemy base, engine and sequence allocation
"""

__version__ = "0.1.0"
