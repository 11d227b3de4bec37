"""
edge_interop

Companion-app-to-edge-device messaging over MQTT: an interactive
companion client, an acknowledging edge responder, and a TPM NV
memory read sample.
"""
__version__ = "0.1.0"
