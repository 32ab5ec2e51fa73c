from pydantic import BaseModel


class CurrentUser(BaseModel):
    """Authenticated user resolved from the bearer token; used for permission checks and audit attribution."""

    id: int
    username: str
    real_name: str
    role: str
