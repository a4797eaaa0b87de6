from pydantic import BaseModel


class HeartbeatRequest(BaseModel):
    user_id: str | None = None
    url: str | None = None
    cpu_cores: int | None = None
    cpu_load: float | None = None
    ram_total: float | None = None
    ram_used: float | None = None
    disk_free: float | None = None
    status: str | None = None


class DeviceOut(BaseModel):
    url: str
    cpu_cores: int
    cpu_load: float
    ram_total: float
    ram_used: float
    disk_free: float
    user_id: str


class SuccessOut(BaseModel):
    success: bool = True
