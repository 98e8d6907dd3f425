"""Caller identity and tenant configuration resolved before every turn."""

from pydantic import BaseModel, ConfigDict, Field, SecretStr

SYSTEM_ADMIN_ROLE = "SYSTEM_ADMIN"


class UserContext(BaseModel):
    """Authenticated caller."""

    user_id: int
    tenant_id: int
    role: str = "USER"
    email: str | None = None

    model_config = ConfigDict(frozen=True)

    @property
    def is_system_admin(self) -> bool:
        return self.role == SYSTEM_ADMIN_ROLE


class TenantContext(BaseModel):
    """Tenant configuration: data database, vector collection and scope."""

    id: int
    slug: str | None = None
    name: str | None = None
    data_db_host: str
    data_db_port: int = 5432
    data_db_name: str
    data_db_user: str
    data_db_password: SecretStr = Field(default=SecretStr(""))
    vector_collection: str | None = None
    table_allow_list: list[str] = Field(default_factory=list)
    scope_filter: str | None = None

    model_config = ConfigDict(frozen=True)


class RequestContext(BaseModel):
    """Resolver output consumed by the pipeline."""

    user: UserContext
    tenant: TenantContext

    model_config = ConfigDict(frozen=True)
