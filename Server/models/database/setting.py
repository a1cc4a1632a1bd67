"""
SafawiNet Server - Setting Database Model

Key-value rows for runtime-tunable server values
(token lifetime, lockout policy, session cap).
"""

from sqlalchemy import Column, String

from models.database.base import Base


class Setting(Base):
    """
    Settings table - stores runtime configuration as key-value pairs
    """
    __tablename__ = "settings"

    key = Column(String, primary_key=True)
    value = Column(String, nullable=False)
