"""
Podio Push Relay

Receives Podio push notifications, either through the signed webhook endpoint
or through Bayeux subscriptions managed by this service, and forwards every
event to the configured downstream targets.
"""

__version__ = "0.1.0"
