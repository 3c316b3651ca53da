# tgrelay/transport/schemas.py
from pydantic import BaseModel


class VerifyOut(BaseModel):
    authenticated: bool


class ErrorOut(BaseModel):
    """Relay-generated error body (provider errors are relayed verbatim)"""
    ok: bool = False
    description: str
