"""
Relay server for the voice chat client.

Thin backend in front of the LLM provider: session auth, conversation and
message storage, and file upload passthrough.
"""
