from pydantic import BaseModel, ValidationError, constr, conint, confloat
from typing import Optional


class Endpoint(BaseModel):
    db_host: constr(strict=True, min_length=1)
    db_port: conint(gt=0, lt=65536)
    db_name: constr(strict=True, min_length=1)
    ssl: bool = False
    ssl_ca_cert: Optional[str] = None

    def __str__(self):
        return f"{self.db_host}:{self.db_port}/{self.db_name}"


class Credentials(BaseModel):
    db_user: constr(strict=True, min_length=1)
    db_passwd: constr(strict=True)
    # ``db_passwd`` holds a Fernet token produced by scripts/encrypt_password.py
    encrypted: bool = False


class ConnectionConfig(BaseModel):
    endpoint: Endpoint
    credentials: Credentials


class PoolConfig(BaseModel):
    name: constr(strict=True, min_length=1) = "default"
    pool_size: conint(gt=0) = 10
    acquire_timeout: Optional[confloat(gt=0)] = None
    shutdown_grace_period: Optional[confloat(ge=0)] = 30.0
    validate_on_acquire: bool = False


class GlobalConfig(BaseModel):
    log_level: constr(strict=True) = "INFO"
    log_path: constr(strict=True) = "logs/"
    # Metrics are not served when ``port`` is omitted.
    port: Optional[conint(gt=0, lt=65536)] = None
    encryption_key: Optional[str] = None


class WorkloadConfig(BaseModel):
    workers: conint(gt=0) = 4
    users: dict[str, conint(ge=0)] = {"Alice": 25, "Bob": 30}


class Config(BaseModel):
    global_config: GlobalConfig = GlobalConfig()
    connection: ConnectionConfig
    pool: PoolConfig = PoolConfig()
    workload: WorkloadConfig = WorkloadConfig()


def validate_config(config: dict) -> Config:
    """
    Validate the configuration dictionary using Pydantic.
    """
    try:
        config = Config(**config)
    except ValidationError as e:
        raise ValueError(f"Configuration validation error: {e}")
    if config.connection.credentials.encrypted and not config.global_config.encryption_key:
        raise ValueError(
            "Configuration validation error: encrypted password requires global_config.encryption_key"
        )
    return config
