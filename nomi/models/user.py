"""User models"""
from typing import Optional
from pydantic import BaseModel


class User(BaseModel):
    """Profile row keyed by the identity provider's user id"""
    clerk_id: str
    firstname: Optional[str] = None
    lastname: Optional[str] = None
    username: Optional[str] = None
    email: Optional[str] = None
    date_of_birth: Optional[str] = None
    gender: Optional[str] = None
