"""
Table definitions for the Service Provider configuration store.

Tables are plain SQLAlchemy Core ``Table`` objects built per ``Settings`` so the
prefix/multisite naming rules and the charset options apply. Columns that were
added to the layout after the first release are produced by small factories,
so migrations add exactly the column a fresh table would have.
"""

from dataclasses import dataclass
from typing import Any

from sqlalchemy import (
    BigInteger,
    Column,
    ForeignKey,
    Integer,
    MetaData,
    SmallInteger,
    String,
    Table,
    Text,
)

from idpstore.core.config import Settings

SP_TABLE = "idp_sp_data"
ATTRIBUTE_TABLE = "idp_sp_attributes"
KEYPAIR_TABLE = "idp_sp_keypairs"

# Attribute kinds stored in ``attr_type``
ATTR_TYPE_CLAIM = 0
ATTR_TYPE_GROUP_MAPPING = 1

# Name of the attribute row that carries the group mapping claim
GROUP_MAPPING_ATTRIBUTE = "groupMapName"

DEFAULT_NAMEID_ATTR = "emailAddress"
DEFAULT_LOGOUT_BINDING = "HttpRedirect"
DEFAULT_PROTOCOL = "SAML"
DEFAULT_ENCRYPTION_ALGORITHM = "RS256"

# BIGINT is not a rowid alias on SQLite, so it would never autoincrement there
IdType = BigInteger().with_variant(Integer, "sqlite")


def table_name(base: str, settings: Settings, shared: bool = True) -> str:
    """
    Resolve the physical name of a table.

    Shared tables drop the per-site prefix on multisite networks so every site
    reads the same Service Provider configuration.
    """
    if shared and settings.multisite:
        return base
    return f"{settings.table_prefix}{base}"


def table_options(settings: Settings) -> dict[str, Any]:
    """Dialect options for created tables (ignored by non-MySQL dialects)."""
    options: dict[str, Any] = {}
    if settings.db_charset:
        options["mysql_charset"] = settings.db_charset
    if settings.db_collate:
        options["mysql_collate"] = settings.db_collate
    return options


# =============================================================================
# Columns added by migrations
# =============================================================================


def cert_encrypt_column() -> Column:
    return Column("cert_encrypt", Text, nullable=True)


def encrypted_assertion_column() -> Column:
    return Column("encrypted_assertion", SmallInteger, nullable=True)


def default_relay_state_column() -> Column:
    return Column("default_relay_state", Text, nullable=True)


def logout_url_column() -> Column:
    return Column("logout_url", Text, nullable=True)


def logout_binding_type_column() -> Column:
    return Column(
        "logout_binding_type",
        String(15),
        nullable=False,
        default=DEFAULT_LOGOUT_BINDING,
        server_default=DEFAULT_LOGOUT_BINDING,
    )


def protocol_type_column() -> Column:
    return Column(
        "protocol_type",
        String(16),
        nullable=False,
        default=DEFAULT_PROTOCOL,
        server_default=DEFAULT_PROTOCOL,
    )


def attr_type_column() -> Column:
    return Column(
        "attr_type",
        SmallInteger,
        nullable=False,
        default=ATTR_TYPE_CLAIM,
        server_default=str(ATTR_TYPE_CLAIM),
    )


# =============================================================================
# Tables
# =============================================================================


@dataclass(frozen=True)
class StoreTables:
    """The three store tables bound to one ``MetaData``."""

    metadata: MetaData
    sp: Table
    attributes: Table
    keypairs: Table


def build_tables(settings: Settings) -> StoreTables:
    """Build the store tables using the naming rules from ``settings``."""
    metadata = MetaData()
    options = table_options(settings)
    sp_name = table_name(SP_TABLE, settings)

    sp = Table(
        sp_name,
        metadata,
        Column("id", IdType, primary_key=True, autoincrement=True),
        Column("sp_name", Text, nullable=False),
        Column("sp_issuer", Text, nullable=False),
        Column("acs_url", Text, nullable=False),
        Column("cert", Text, nullable=True),
        cert_encrypt_column(),
        Column("nameid_format", Text, nullable=False),
        Column(
            "nameid_attr",
            String(55),
            nullable=False,
            default=DEFAULT_NAMEID_ATTR,
            server_default=DEFAULT_NAMEID_ATTR,
        ),
        Column("response_signed", SmallInteger, nullable=True),
        Column("assertion_signed", SmallInteger, nullable=True),
        encrypted_assertion_column(),
        Column("enable_group_mapping", SmallInteger, nullable=True),
        default_relay_state_column(),
        logout_url_column(),
        logout_binding_type_column(),
        protocol_type_column(),
        sqlite_autoincrement=True,
        **options,
    )

    attributes = Table(
        table_name(ATTRIBUTE_TABLE, settings),
        metadata,
        Column("id", IdType, primary_key=True, autoincrement=True),
        Column("sp_id", IdType, ForeignKey(f"{sp_name}.id"), nullable=True, index=True),
        Column("attr_name", Text, nullable=False),
        Column("attr_value", Text, nullable=False),
        attr_type_column(),
        **options,
    )

    # No primary key: one row per client_id is kept by the store, not the schema
    keypairs = Table(
        table_name(KEYPAIR_TABLE, settings),
        metadata,
        Column("client_id", String(80)),
        Column("public_key", String(8000)),
        Column("private_key", String(8000)),
        Column(
            "encryption_algorithm",
            String(80),
            default=DEFAULT_ENCRYPTION_ALGORITHM,
            server_default=DEFAULT_ENCRYPTION_ALGORITHM,
        ),
        **options,
    )

    return StoreTables(metadata=metadata, sp=sp, attributes=attributes, keypairs=keypairs)
