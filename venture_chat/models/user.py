from typing import Literal, Optional, TypedDict


UserRole = Literal["entrepreneur", "investor"]


class UserDocument(TypedDict, total=False):

    _id: str
    name: Optional[str]
    email: str
    role: UserRole
