"""
Fleet Kernel

Persistence, domain types and settlement services for the fleet billing
engine:
- Versioned, append-only rate catalog and scoped overrides
- Application-rule driven expense charges
- Period statements with a guarded settlement lifecycle
- Hash-chained, immutable statement audit trail
"""

__version__ = "0.1.0"
