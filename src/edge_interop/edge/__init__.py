"""
Edge responder module.
Acknowledges every inbound message by republishing it with a fixed suffix.
"""
