from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class BrandingRecord(BaseModel):
    ticker: str
    icon_url: Optional[str] = None
    logo_url: Optional[str] = None
    company_name: str
    exchange: Optional[str] = None
    updated_at: Optional[datetime] = None
