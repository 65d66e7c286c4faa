"""
Moaawen order session engine.

Per-conversation order sessions for WhatsApp / Instagram / Messenger
shoppers, persisted in DynamoDB.
"""

__version__ = "0.3.0"
