"""
Tests for the eztips package.

This package contains tests for:
- Configuration management
- Address resolution and the mirror node read path
- Transaction encoding and freezing
- Wallet session lifecycle
- Tip orchestration and confirmation
- Review ledger submission, verification and reconciliation
- Review index backends (memory, Redis)
- Rating aggregation
- Application wiring and review follow-ups
- Logging helpers and the audit CLI
"""
