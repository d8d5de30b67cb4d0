"""State layer.

This package holds the per-entity attribute cache and the machinery that
keeps it fed: connector bookkeeping, refresh coordination and command
dispatch. It knows nothing about HTTP or MQTT.
"""
