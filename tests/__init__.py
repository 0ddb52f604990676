"""
Test suite for the Final Note service.

This package contains:
- Unit tests (services, state machine, encryption)
- API endpoint tests
- Integration tests covering whole switch lifecycles
"""
