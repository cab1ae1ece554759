"""
Database Models

All SQLAlchemy models for the application.
"""

from app.models.fundamental import Fundamental
from app.models.earning import Earning
from app.models.logo import Logo
from app.models.news import News

__all__ = ["Fundamental", "Earning", "Logo", "News"]
