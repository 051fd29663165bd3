from sqlalchemy.orm import declarative_base
from sqlalchemy import Column, LargeBinary, String, Text

Base = declarative_base()


class Message(Base):
    __tablename__ = "messages"

    id = Column(String(32), primary_key=True)
    ciphertext = Column(LargeBinary, nullable=False)
    key = Column(LargeBinary, nullable=False)     # same length as the UTF-8 plaintext
    created_at = Column(String, nullable=False)   # ISO-8601 UTC, microseconds
    expires_at = Column(String, nullable=False, index=True)
    writer_address = Column(String, nullable=True)
    user_agent = Column(Text, nullable=True)
