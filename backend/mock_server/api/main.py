from fastapi import APIRouter

from mock_server.api.routes import utils

api_router = APIRouter()
api_router.include_router(utils.router)
