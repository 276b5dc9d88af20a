"""
Messaging Models
Log of every outbound SMS and chat message
"""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.sql import func

from .database import Base


class MessageLog(Base):
    """Track messages sent via Twilio and Telegram"""

    __tablename__ = "message_logs"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=True, index=True)

    # Message details
    channel = Column(String(20), nullable=False)  # sms, telegram
    recipient = Column(String(64), nullable=False)
    message_body = Column(Text, nullable=False)
    message_type = Column(String(50), nullable=False)
    entity_type = Column(String(50), nullable=True)
    entity_id = Column(Integer, nullable=True)

    # Provider response
    provider_message_id = Column(String(255), nullable=True)
    status = Column(String(50), nullable=False)  # sent, failed
    error_message = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
