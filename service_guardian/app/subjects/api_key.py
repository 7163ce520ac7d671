"""
API key subject resolver.

Clients are registered in a key vault (``apikeys.json``)::

    {
      "ApiKeys": [
        {
          "ClientId": "reporting",
          "ClientName": "REPORTING",
          "IpAddresses": ["10.0.0.7"],
          "Keys": [{"Secret": "s3cr3t", "ValidUntil": "2030-01-01T00:00:00"}]
        }
      ]
    }

A request authenticates with the ``x-client-id`` and ``x-client-key``
headers from one of the client's addresses; the subject is the client name.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from fastapi import Request
from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError
from pydantic.alias_generators import to_pascal

from shared.logging import get_logger

from .base import SubjectResolver, join_subjects


HEADER_CLIENT_ID = "x-client-id"
HEADER_CLIENT_KEY = "x-client-key"

logger = get_logger("guardian.api_key_resolver")


class _VaultModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_pascal, populate_by_name=True)


class ApiKeySecret(_VaultModel):
    secret: str
    valid_until: datetime

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        valid_until = self.valid_until
        if now is None:
            now = datetime.now(timezone.utc) if valid_until.tzinfo else datetime.now()
        elif (now.tzinfo is None) != (valid_until.tzinfo is None):
            valid_until = valid_until.replace(tzinfo=now.tzinfo)
        return valid_until >= now


class ApiKeyClient(_VaultModel):
    client_id: str
    client_name: str
    ip_addresses: List[str] = Field(default_factory=list)
    keys: List[ApiKeySecret] = Field(default_factory=list)

    def valid_secrets(self, now: Optional[datetime] = None) -> List[str]:
        return [key.secret for key in self.keys if key.is_valid(now)]


class ApiKeyVault(_VaultModel):
    api_keys: List[ApiKeyClient] = Field(default_factory=list)

    def find_client(self, client_id: str, ip_address: Optional[str]) -> Optional[ApiKeyClient]:
        for client in self.api_keys:
            if client.client_id == client_id and ip_address in client.ip_addresses:
                return client
        return None

    @classmethod
    def from_file(cls, api_keys_file: str) -> "ApiKeyVault":
        """Read a key vault; problems are logged and yield an empty vault."""
        path = Path(api_keys_file)
        try:
            return cls.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, PydanticValidationError) as e:
            logger.error("Problems reading API key vault", api_keys_file=api_keys_file, error=str(e))
            return cls()


class ApiKeySubjectResolver(SubjectResolver):
    """Subjects from a client id / key pair registered in the vault."""

    name = "api_key"

    def __init__(self, vault: ApiKeyVault):
        self.vault = vault
        self.logger = logger

    async def resolve(self, request: Request) -> Optional[str]:
        client_id = request.headers.get(HEADER_CLIENT_ID)
        if not client_id:
            return None

        if not self.vault.api_keys:
            self.logger.error("No API keys found, key vault is empty")
            return None

        client_key = request.headers.get(HEADER_CLIENT_KEY)
        ip_address = request.client.host if request.client else None

        client = self.vault.find_client(client_id, ip_address)
        if client is None or not client.valid_secrets():
            self.logger.warning(
                "No valid API key for client",
                method=request.method,
                path=request.url.path,
                client_id=client_id,
                ip=ip_address
            )
            return None

        if client_key not in client.valid_secrets():
            self.logger.warning(
                "Invalid API key for client",
                method=request.method,
                path=request.url.path,
                client_id=client_id,
                ip=ip_address
            )
            return None

        return join_subjects([client.client_name])
