from fastapi import APIRouter

from jobledger.api.routes import budgets, devices, health, jobs, tunnels

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(devices.router, tags=["devices"])
api_router.include_router(jobs.router, tags=["jobs"])
api_router.include_router(budgets.router, tags=["budgets"])
api_router.include_router(tunnels.router, tags=["tunnels"])
