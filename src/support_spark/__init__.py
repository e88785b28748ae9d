"""
SupportSpark: a private support network.

Members invite trusted supporters, share journey updates in conversations and receive
encouragement. Access to every conversation is derived from the owner's active
supporter relationships at the moment of each request.
"""

__version__ = "0.1.0"
