from fastapi import Request
from sqlalchemy.orm import sessionmaker

from hkdesk.database import SessionLocal
from hkdesk.services.pipeline import SharedServices


def get_services(request: Request) -> SharedServices:
    return request.app.state.services


def get_session_factory() -> sessionmaker:
    """Session factory for work that outlives the request (background tasks)."""
    return SessionLocal
