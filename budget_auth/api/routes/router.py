# budget_auth/api/routes/router.py
from fastapi import APIRouter

from budget_auth.api.routes import admin, auth, login, oauth2

api_router = APIRouter()

api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(oauth2.router, prefix="/oauth", tags=["oauth2"])
api_router.include_router(admin.router, prefix="/admin/oauth-clients", tags=["admin"])
# browser pages: /login, /logout
api_router.include_router(login.router)
