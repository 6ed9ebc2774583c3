"""
Admin Module - Models
======================
Request audit log written by the HTTP middleware.
"""

from sqlalchemy import Column, Integer, String, DateTime, Text, Index
from sqlalchemy.sql import func
from config.database import Base


# ==========================================
# Request Audit Log
# ==========================================

class RequestLog(Base):
    __tablename__ = "request_logs"

    id = Column(Integer, primary_key=True)
    method = Column(String(10), nullable=False)                  # GET, POST, PUT, DELETE
    path = Column(String(500), nullable=False)                   # URL path (no query string)
    query_string = Column(Text, nullable=True)                   # query parameters
    status_code = Column(Integer, nullable=False)                # HTTP response status
    ip_address = Column(String(45), nullable=True)               # IPv4 / IPv6
    user_agent = Column(String(500), nullable=True)              # client info
    user_type = Column(String(20), nullable=False, default="anonymous")  # admin/user/anonymous
    user_id = Column(Integer, nullable=True)                     # user PK (if authenticated)
    body_preview = Column(Text, nullable=True)                   # body (truncated, sensitive masked)
    response_time_ms = Column(Integer, nullable=True)            # response duration (ms)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_reqlog_created", "created_at"),
        Index("ix_reqlog_path", "path"),
        Index("ix_reqlog_user", "user_id"),
    )
