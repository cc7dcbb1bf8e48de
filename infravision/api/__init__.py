"""Infravision API adapter package.

Architectural role:
- Defines the HTTP boundary used by a presentation layer.
- Performs transport-level validation and response shaping.
- Delegates state changes and generation to the core layer.
"""
