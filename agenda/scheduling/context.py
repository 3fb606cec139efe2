from dataclasses import dataclass

from agenda.models.user import Role


@dataclass(frozen=True)
class CallerContext:
    """The authenticated caller, resolved from the identity provider's token."""

    user_id: int
    role: Role

    @property
    def is_provider(self) -> bool:
        return self.role == Role.PROVIDER

    @property
    def is_client(self) -> bool:
        return self.role == Role.CLIENT
