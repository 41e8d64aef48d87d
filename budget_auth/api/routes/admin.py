# budget_auth/api/routes/admin.py
from fastapi import APIRouter, Depends

from budget_auth.api.deps import get_runtime, require_admin
from budget_auth.schemas.client import (
    ClientCreate,
    ClientCreatedEnvelope,
    ClientEnvelope,
    ClientList,
    ClientUpdate,
)
from budget_auth.services.runtime import AuthRuntime

router = APIRouter(dependencies=[Depends(require_admin)])


@router.get("", response_model=ClientList)
async def list_clients(runtime: AuthRuntime = Depends(get_runtime)):
    return {"clients": await runtime.credentials.list_clients()}


@router.get("/{client_id}", response_model=ClientEnvelope)
async def get_client(client_id: str, runtime: AuthRuntime = Depends(get_runtime)):
    return {"client": await runtime.credentials.get_client(client_id)}


@router.post("", response_model=ClientCreatedEnvelope, status_code=201)
async def create_client(body: ClientCreate, runtime: AuthRuntime = Depends(get_runtime)):
    client = await runtime.credentials.create_client(
        body.client_id,
        client_secret=body.client_secret,
        allowed_scopes=body.allowed_scopes,
        redirect_uris=body.redirect_uris,
    )
    return {"client": client, "message": "Client created; store the client_secret now, it will not be shown again"}


@router.put("/{client_id}", response_model=ClientEnvelope)
async def update_client(client_id: str, body: ClientUpdate, runtime: AuthRuntime = Depends(get_runtime)):
    client = await runtime.credentials.update_client(
        client_id,
        client_secret=body.client_secret,
        allowed_scopes=body.allowed_scopes,
        redirect_uris=body.redirect_uris,
    )
    return {"client": client, "message": "Client updated"}


@router.delete("/{client_id}")
async def delete_client(client_id: str, runtime: AuthRuntime = Depends(get_runtime)):
    await runtime.credentials.delete_client(client_id)
    return {"message": f"Client {client_id} deleted"}
