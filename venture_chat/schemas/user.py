from typing import Optional

from pydantic import BaseModel, ConfigDict


class UserPublic(BaseModel):

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None


class CurrentUser(BaseModel):
    """The authenticated caller, as vouched for by the access token."""

    id: str
    name: Optional[str] = None
    email: Optional[str] = None


class TokenPayload(BaseModel):

    sub: str
    exp: int
    name: Optional[str] = None
    email: Optional[str] = None
