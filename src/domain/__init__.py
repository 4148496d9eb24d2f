"""
Domain layer for shipment email processing.

This layer contains:
- Data models (type-safe structures)
- Tracking-number extraction (pattern table, rejection filters, extractors)
- Business logic (email processing pipeline)
"""
