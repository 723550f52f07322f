"""
Pydantic schemas for chat requests and responses.
"""
from pydantic import BaseModel, ConfigDict
from datetime import datetime
from typing import List, Optional


class CurrentUser(BaseModel):
    """Identity taken from the verified bearer token"""
    id: int
    language_preference: str = "en"


class ChatRequest(BaseModel):
    """Request schema for sending a chat message"""
    message: str
    language: Optional[str] = None
    conversationId: Optional[str] = None


class ExchangeResponse(BaseModel):
    """One stored request/response pair"""
    model_config = ConfigDict(protected_namespaces=())

    id: int
    conversationId: str
    message: str
    response: str
    model_name: str
    language: str
    createdAt: datetime


class ChatResponse(BaseModel):
    """Response schema for a routed chat message"""
    model_config = ConfigDict(protected_namespaces=())

    id: int
    conversationId: str
    message: str
    response: str
    model_name: str
    language: str
    createdAt: datetime
    intent: str
    classified: bool
    degraded: bool


class SimpleChatRequest(BaseModel):
    """Request schema for direct chat with a chosen model"""
    model_config = ConfigDict(protected_namespaces=())

    message: str
    model_name: Optional[str] = None
    language: Optional[str] = None
    conversationId: Optional[str] = None


class SimpleChatResponse(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    id: int
    conversationId: str
    message: str
    response: str
    model_name: str
    language: str
    createdAt: datetime
    degraded: bool
    agent_type: str = "simple"


class NewConversationRequest(BaseModel):
    title: Optional[str] = None
    language: Optional[str] = None


class NewConversationResponse(BaseModel):
    conversationId: str
    title: str
    language: str
    createdAt: datetime
    messageCount: int = 0


class ConversationItem(BaseModel):
    """Response schema for one conversation in a listing"""
    conversationId: str
    title: str
    language: str
    messageCount: int
    createdAt: datetime
    lastActivity: datetime


class Pagination(BaseModel):
    limit: int
    offset: int
    order: Optional[str] = None


class ConversationListResponse(BaseModel):
    """Response schema for list of conversations"""
    data: List[ConversationItem]
    total: int
    pagination: Pagination


class HistoryResponse(BaseModel):
    conversationId: Optional[str] = None
    messages: List[ExchangeResponse]
    total: int
    pagination: Pagination


class SummarySnapshot(BaseModel):
    text: Optional[str]
    language: str
    updatedAt: datetime


class SummaryStatistics(BaseModel):
    totalMessages: int
    totalConversations: int
    arabicMessages: int
    englishMessages: int
    lastActivity: Optional[datetime] = None


class UserSummaryResponse(BaseModel):
    summary: Optional[SummarySnapshot] = None
    statistics: SummaryStatistics
    hasSummary: bool


class DeleteConversationResponse(BaseModel):
    message: str
    conversationId: str
    deletedMessageCount: int


class ClearMemoryResponse(BaseModel):
    conversationId: str
    cleared: bool


class AgentInfoResponse(BaseModel):
    supportedIntents: List[str]
    supportedLanguages: List[str]
    contextBudgets: dict
    memory: dict
