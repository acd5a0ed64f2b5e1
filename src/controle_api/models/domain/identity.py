"""Identity provider account domain model."""

from pydantic import BaseModel


class IdentityUser(BaseModel):
    """Account as returned by the identity-admin API."""

    id: str
    email: str | None = None

    class Config:
        """Pydantic config."""

        extra = "ignore"

    def matches_email(self, email: str) -> bool:
        """Check whether this account belongs to an email (case-insensitive, trimmed)."""
        return (self.email or "").strip().lower() == email.strip().lower()


class Manager(BaseModel):
    """Authenticated caller holding a manager profile."""

    id: str
    email: str | None = None
    role: str
