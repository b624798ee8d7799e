from sqlalchemy import Column, Integer, String, DateTime, CheckConstraint, UniqueConstraint, Index

from app.core.db import Base, utcnow


def canonical_pair(a: str, b: str) -> tuple[str, str]:
    a_str = str(a)
    b_str = str(b)
    return (a_str, b_str) if a_str < b_str else (b_str, a_str)


class Connection(Base):
    __tablename__ = "connections"

    id = Column(Integer, primary_key=True, index=True)
    requester_id = Column(String, nullable=False, index=True)
    recipient_id = Column(String, nullable=False, index=True)

    # sorted (requester, recipient); one row per unordered pair
    pair_low = Column(String, nullable=False)
    pair_high = Column(String, nullable=False)

    status = Column(
        String,
        CheckConstraint(
            "status IN ('pending','accepted','rejected')",
            name="connections_status_check",
        ),
        nullable=False,
        default="pending",
    )
    message = Column(String, nullable=False, default="")

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("pair_low", "pair_high", name="uq_connections_pair"),
        CheckConstraint("requester_id <> recipient_id", name="connections_no_self_check"),
        Index("idx_connections_recipient_status", "recipient_id", "status", "created_at"),
    )

    def other_party(self, user_id: str) -> str:
        return self.recipient_id if user_id == self.requester_id else self.requester_id
