"""User provisioning DTOs.

Request fields are deliberately lenient (all optional strings): a batch item
missing a required field is reported as failed instead of rejecting the
whole request.
"""

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class ProvisioningStatus(StrEnum):
    """Final status of one provisioning request."""

    CREATED = "created"
    EXISTING = "existing"
    FAILED = "failed"


class UserCreateRequest(BaseModel):
    """Request to create one user (identity account plus profile row)."""

    model_config = ConfigDict(populate_by_name=True)

    nome: str | None = None
    email: str | None = None
    senha: str | None = None
    role: str | None = "usuario"
    departamento_id: str | None = Field(default=None, alias="departamentoId")
    ativo: bool | None = True

    def missing_required(self) -> bool:
        """Check whether name, email or password is blank."""
        return not (self.nome or "").strip() or not (self.email or "").strip() or not (self.senha or "").strip()

    def profile_row(self, user_id: str) -> dict[str, object]:
        """Build the profile row stored for this request."""
        return {
            "id": user_id,
            "nome": (self.nome or "").strip(),
            "email": (self.email or "").strip(),
            "role": self.role or "usuario",
            "departamento_id": self.departamento_id,
            "ativo": True if self.ativo is None else self.ativo,
        }


class BatchUserRequest(BaseModel):
    """Request to create many users in one call."""

    users: list[UserCreateRequest] = Field(default_factory=list, max_length=500)


class BatchUserResult(BaseModel):
    """Outcome of one request in a batch."""

    nome: str
    email: str
    id: str | None = None
    error: str | None = None
    status: ProvisioningStatus


class BatchSummary(BaseModel):
    """Tally of a batch run."""

    total: int = 0
    created: int = 0
    existing: int = 0
    failed: int = 0


class BatchUserResponse(BaseModel):
    """Response for a batch run."""

    results: list[BatchUserResult]
    summary: BatchSummary


class UserProfileResponse(BaseModel):
    """Profile created by the single-user path."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    nome: str
    email: str
    role: str
    departamento_id: str | None = Field(default=None, serialization_alias="departamentoId")
    ativo: bool
    status: ProvisioningStatus
