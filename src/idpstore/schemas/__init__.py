"""Pydantic schemas for idpstore records."""

from idpstore.schemas.service_provider import (
    AttributeMapping,
    AttributeMappingCreate,
    KeyPair,
    LogoutBinding,
    ProtocolType,
    ServiceProvider,
    ServiceProviderCreate,
    ServiceProviderUpdate,
)

__all__ = [
    "AttributeMapping",
    "AttributeMappingCreate",
    "KeyPair",
    "LogoutBinding",
    "ProtocolType",
    "ServiceProvider",
    "ServiceProviderCreate",
    "ServiceProviderUpdate",
]
