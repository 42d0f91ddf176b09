from fastapi import APIRouter
from assistant_api.api.endpoints import ai_query, auth, users

api_router = APIRouter()

# Account endpoints first, then the gateway the assistant talks to
api_router.include_router(users.router)
api_router.include_router(auth.router)
api_router.include_router(ai_query.router)
