"""
Models package - exports all database models.
"""
from parley.models.exchange import Exchange, DEFAULT_CONVERSATION_ID, normalize_conversation_id
from parley.models.user_summary import UserSummary, MAX_SUMMARY_LENGTH

__all__ = [
    "Exchange",
    "DEFAULT_CONVERSATION_ID",
    "normalize_conversation_id",
    "UserSummary",
    "MAX_SUMMARY_LENGTH",
]
