"""
AskData

Multi-tenant "chat with your data": natural-language questions answered by
one scoped, read-only SQL query per turn, streamed back over SSE.
"""

__version__ = "0.1.0"
