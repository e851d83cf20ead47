"""Agent roster used to link recordings to local agents."""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from recsync.database import Base


class Agent(Base):
    """
    Contact-center agent known to the console.

    Maintained outside the sync engine; recordings only reference it.
    """

    __tablename__ = "agents"

    id: Mapped[int] = mapped_column(primary_key=True)
    # Telephony / upstream agent id
    agent_id: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    team_code: Mapped[str | None] = mapped_column(String(100))

    def __repr__(self) -> str:
        return f"<Agent {self.agent_id}: {self.full_name}>"
