"""
Connection models shared by the connection layer, dbt profiles and drivers.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ProductTypeEnum(str, Enum):
    """Supported database product types (postgres, mysql, trino, sqlite)."""

    POSTGRES = "postgres"
    MYSQL = "mysql"
    TRINO = "trino"
    SQLITE = "sqlite"


_DEFAULT_PORTS = {
    ProductTypeEnum.POSTGRES: 5432,
    ProductTypeEnum.MYSQL: 3306,
    ProductTypeEnum.TRINO: 8080,
}


class ConnectionSettings(BaseModel):
    """Everything needed to open one connection.

    For sqlite, ``database`` is the file path (``:memory:`` allowed) and the
    network fields are ignored.
    """

    model_config = ConfigDict(use_enum_values=False)

    product_type: ProductTypeEnum
    host: str | None = None
    port: int | None = Field(default=None, ge=1, le=65535)
    database: str | None = None
    username: str | None = None
    password: str | None = None
    schema_name: str | None = None
    use_ssl: bool = False

    def effective_port(self) -> int | None:
        return self.port or _DEFAULT_PORTS.get(self.product_type)
