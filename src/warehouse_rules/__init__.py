"""
Warehouse Business Rule Engine

Automates warehouse events with config-driven rules:
- Condition trees of nested AND/OR groups over typed fields
- Ordered, continue-on-error action lists
- Validation before activation, lossless JSON exchange with the builder
"""

__version__ = "0.1.0"
