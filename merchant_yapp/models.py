from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String, Text

from merchant_yapp.database import Base


class StoreEntry(Base):
    __tablename__ = "store_entries"

    origin = Column(String, primary_key=True)      # scope, e.g. https://shop.example
    key = Column(String, primary_key=True)         # order:{id} | payment:{id}
    value = Column(Text, nullable=False)           # JSON document
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
