"""
Logo Model

Branding assets per ticker. Overwritten wholesale on refresh.
"""

from datetime import datetime
from sqlalchemy import Column, String, Text, DateTime

from app.database import Base


class Logo(Base):
    """Company branding (icon and full logo URLs)."""

    __tablename__ = "logos"

    ticker = Column(String(10), primary_key=True)
    icon_url = Column(Text, nullable=True)
    logo_url = Column(Text, nullable=True)
    company_name = Column(String(255), nullable=False)
    exchange = Column(String(20), nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<Logo(ticker={self.ticker}, name={self.company_name})>"
