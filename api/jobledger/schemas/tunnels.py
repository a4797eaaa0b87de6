from pydantic import BaseModel


class TunnelAccessRequest(BaseModel):
    user_id: str | None = None


class TunnelAccessOut(BaseModel):
    token: str
    id: str
