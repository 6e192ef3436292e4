"""
Asset Modules.

Domain layer over the Asset Kernel.  Each module contains:
- Domain models (the nouns)
- ORM persistence
- Workflows (state machines)
- Configuration schemas (policy and settings)
- Service facades that own the transaction boundary

Modules:
- Assets: Registry, depreciation calculator, eligibility, retirement and
  disposal, audit history
"""
