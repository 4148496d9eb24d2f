"""
Service functions for the shipment email scanner.

This package wraps the AWS services and text utilities used by the domain
layer: email parsing, S3 objects, tracker state and SES notifications.
"""

__all__ = ['email', 's3', 'state', 'notifications']
