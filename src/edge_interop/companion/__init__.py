"""
Interactive companion client.
Publishes operator messages to the edge device and listens for its replies.
"""
