from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from agenda.auth.dependencies import get_current_user, get_token_subject
from agenda.database import ensure_database_ready, get_db
from agenda.models.user import Role, User
from agenda.scheduling.directory import Directory

router = APIRouter(tags=['auth'])

MAX_PROFILE_FIELD_LENGTH = 120


class RegisterRequest(BaseModel):
    name: str
    role: Role
    phone: str | None = None
    specialty: str | None = None

    @field_validator('name', 'phone', 'specialty')
    @classmethod
    def strip_text(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        if len(normalized) > MAX_PROFILE_FIELD_LENGTH:
            raise ValueError(f'Must be {MAX_PROFILE_FIELD_LENGTH} characters or fewer.')
        return normalized or None


def _profile(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "phone": user.phone,
        "specialty": user.specialty,
        "role": Role(user.role).value,
    }


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(
    data: RegisterRequest,
    email: str = Depends(get_token_subject),
    db: Session = Depends(get_db),
):
    ensure_database_ready()
    user = Directory(db).register(
        email,
        name=data.name,
        role=data.role,
        phone=data.phone,
        specialty=data.specialty,
    )
    return _profile(user)


@router.get("/me")
def me(current_user: User = Depends(get_current_user)):
    return _profile(current_user)
