# tracker/__init__.py
from typing import List
from fastapi import APIRouter


def get_routers() -> List[APIRouter]:
    from .routes.subjects import router as subjects_router
    from .routes.appointments import router as appointments_router
    from .routes.data import router as data_router
    from .routes.comms import router as comms_router
    return [subjects_router, appointments_router, data_router, comms_router]
