"""Service Provider schemas for store input and output."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from idpstore.db.schema import (
    ATTR_TYPE_CLAIM,
    DEFAULT_ENCRYPTION_ALGORITHM,
    DEFAULT_LOGOUT_BINDING,
    DEFAULT_NAMEID_ATTR,
)


class ProtocolType(str, Enum):
    """Federation protocol spoken with a Service Provider."""

    SAML = "SAML"
    WS_FED = "WS-Fed"


class LogoutBinding(str, Enum):
    """Binding used to deliver logout messages."""

    HTTP_REDIRECT = "HttpRedirect"
    HTTP_POST = "HttpPost"


# =============================================================================
# Service Provider
# =============================================================================


class ServiceProviderBase(BaseModel):
    """Base schema for a Service Provider."""

    sp_name: str = Field(..., min_length=1, description="Display name")
    sp_issuer: str = Field(..., min_length=1, description="Issuer / entity ID")
    acs_url: str = Field(..., min_length=1, description="Assertion consumer service URL")
    cert: Optional[str] = Field(None, description="Signing certificate (PEM)")
    cert_encrypt: Optional[str] = Field(None, description="Encryption certificate (PEM)")
    nameid_format: str = Field(..., description="Name-ID format URN")
    nameid_attr: str = Field(DEFAULT_NAMEID_ATTR, max_length=55, description="Name-ID source attribute")
    response_signed: Optional[int] = Field(None, ge=0, le=1)
    assertion_signed: Optional[int] = Field(None, ge=0, le=1)
    encrypted_assertion: Optional[int] = Field(None, ge=0, le=1)
    enable_group_mapping: Optional[int] = Field(None, ge=0, le=1)
    default_relay_state: Optional[str] = None
    logout_url: Optional[str] = None
    logout_binding_type: str = Field(DEFAULT_LOGOUT_BINDING, max_length=15)
    protocol_type: str = Field(ProtocolType.SAML.value, max_length=16)


class ServiceProviderCreate(ServiceProviderBase):
    """Schema for registering a Service Provider."""

    protocol_type: ProtocolType = ProtocolType.SAML
    logout_binding_type: LogoutBinding = LogoutBinding.HTTP_REDIRECT


class ServiceProviderUpdate(BaseModel):
    """Partial update; only fields that were set are written."""

    sp_name: Optional[str] = Field(None, min_length=1)
    sp_issuer: Optional[str] = Field(None, min_length=1)
    acs_url: Optional[str] = Field(None, min_length=1)
    cert: Optional[str] = None
    cert_encrypt: Optional[str] = None
    nameid_format: Optional[str] = None
    nameid_attr: Optional[str] = Field(None, max_length=55)
    response_signed: Optional[int] = Field(None, ge=0, le=1)
    assertion_signed: Optional[int] = Field(None, ge=0, le=1)
    encrypted_assertion: Optional[int] = Field(None, ge=0, le=1)
    enable_group_mapping: Optional[int] = Field(None, ge=0, le=1)
    default_relay_state: Optional[str] = None
    logout_url: Optional[str] = None
    logout_binding_type: Optional[LogoutBinding] = None
    protocol_type: Optional[ProtocolType] = None


class ServiceProvider(ServiceProviderBase):
    """Stored Service Provider row."""

    id: int

    # Rows written by older releases may hold values the create schema rejects
    sp_name: str
    sp_issuer: str
    acs_url: str
    nameid_attr: str = DEFAULT_NAMEID_ATTR
    response_signed: Optional[int] = None
    assertion_signed: Optional[int] = None
    encrypted_assertion: Optional[int] = None
    enable_group_mapping: Optional[int] = None
    logout_binding_type: str = DEFAULT_LOGOUT_BINDING
    protocol_type: str = ProtocolType.SAML.value

    model_config = {"from_attributes": True}


# =============================================================================
# Attribute Mapping
# =============================================================================


class AttributeMappingCreate(BaseModel):
    """Schema for adding an attribute mapping to a Service Provider."""

    sp_id: int = Field(..., description="Owning Service Provider ID")
    attr_name: str = Field(..., min_length=1)
    attr_value: str
    attr_type: int = Field(ATTR_TYPE_CLAIM, ge=0, le=1, description="0 = claim, 1 = group mapping")


class AttributeMapping(AttributeMappingCreate):
    """Stored attribute mapping row."""

    id: int
    sp_id: Optional[int] = None  # type: ignore[assignment]
    attr_name: str
    attr_type: int = ATTR_TYPE_CLAIM

    model_config = {"from_attributes": True}


# =============================================================================
# Key Pair
# =============================================================================


class KeyPair(BaseModel):
    """Signing/encryption key material stored for a Service Provider."""

    client_id: str
    public_key: Optional[str] = None
    private_key: Optional[str] = None
    encryption_algorithm: Optional[str] = DEFAULT_ENCRYPTION_ALGORITHM

    model_config = {"from_attributes": True}
