from sqlalchemy.orm import declarative_base
from sqlalchemy import (
    Column,
    Integer,
    String,
    Float,
    UniqueConstraint,
)
from sqlalchemy.ext.asyncio import AsyncEngine


Base = declarative_base()


# ----------------------------
# ORM models
# ----------------------------
class Setting(Base):
    __tablename__ = "settings"
    key = Column(String, primary_key=True)
    value = Column(String, nullable=True)
    updated_at = Column(Float, nullable=True)


class Card(Base):
    __tablename__ = "cards"
    __table_args__ = (
        UniqueConstraint("product_id", "card_key", name="uq_cards_product_key"),
    )
    id = Column(Integer, primary_key=True, autoincrement=True)
    product_id = Column(String, nullable=False, index=True)
    card_key = Column(String, nullable=False)
    created_at = Column(Float, nullable=False)


async def create_schema(engine: AsyncEngine) -> None:
    # idempotent; no migrations
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
