from fastapi import Header, HTTPException

from storygate.core.config import settings
from storygate.services.container import Services, get_services


def services() -> Services:
    return get_services()


def require_admin(x_admin_key: str | None = Header(default=None)) -> None:
    if settings.admin_api_key and x_admin_key != settings.admin_api_key:
        raise HTTPException(status_code=401, detail="unauthorized")
