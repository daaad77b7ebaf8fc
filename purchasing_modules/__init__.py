"""
Purchasing Modules.

Orchestration layers over the Purchasing Kernel and Engines.
Each module contains:
- Domain models (the nouns)
- Workflows (state machines)
- Configuration schemas (policy and settings)
- A service facade and its persistence

Modules:
- Purchase Order: orders, goods receiving, payments, returns, reporting
"""
