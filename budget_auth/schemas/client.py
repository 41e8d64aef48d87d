# budget_auth/schemas/client.py
from datetime import datetime
from typing import List, Optional, Union

from pydantic import BaseModel

CsvOrList = Union[str, List[str]]


class ClientCreate(BaseModel):
    client_id: str
    client_secret: Optional[str] = None
    allowed_scopes: CsvOrList = "api"
    redirect_uris: Optional[CsvOrList] = None


class ClientUpdate(BaseModel):
    client_secret: Optional[str] = None
    allowed_scopes: Optional[CsvOrList] = None
    redirect_uris: Optional[CsvOrList] = None


class ClientOut(BaseModel):
    client_id: str
    allowed_scopes: List[str]
    redirect_uris: List[str]
    created_at: Optional[datetime] = None


class ClientWithSecret(ClientOut):
    # only ever populated in the create response
    client_secret: str


class ClientList(BaseModel):
    clients: List[ClientOut]


class ClientEnvelope(BaseModel):
    client: ClientOut
    message: Optional[str] = None


class ClientCreatedEnvelope(BaseModel):
    client: ClientWithSecret
    message: str
