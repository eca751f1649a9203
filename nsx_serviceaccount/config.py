"""Configuration objects for nsx-serviceaccount."""

from dataclasses import dataclass, field
from datetime import timedelta
import logging
from pathlib import Path

import aiofiles
from mashumaro import DataClassDictMixin, field_options
from mashumaro.codecs.yaml import yaml_decode
from mashumaro.config import BaseConfig

from .exceptions import InputException
from .manifest import NSXProxyEndpoint

__all__ = [
    "OperatorConfig",
    "parse_config",
    "read_config",
]

_LOGGER = logging.getLogger(__name__)


DEFAULT_GC_INTERVAL_SECONDS = 600
DEFAULT_VERSION_CHECK_REQUEUE_SECONDS = 300


@dataclass
class OperatorConfig(DataClassDictMixin):
    """Configuration for the NSXServiceAccount controller."""

    cluster_name: str = field(metadata=field_options(alias="clusterName"))
    """Name of the kubernetes cluster, used as prefix for remote record names."""

    nsx_managers: list[str] = field(
        metadata=field_options(alias="nsxManagers"), default_factory=list
    )
    """NSX manager addresses as host:port, reported in resource status."""

    vpc_path: str = field(metadata=field_options(alias="vpcPath"), default="")
    """The VPC the principal identities are granted a role on."""

    proxy_endpoints: NSXProxyEndpoint = field(
        metadata=field_options(alias="proxyEndpoints"),
        default_factory=NSXProxyEndpoint,
    )

    gc_interval_seconds: float = field(
        metadata=field_options(alias="gcIntervalSeconds"),
        default=DEFAULT_GC_INTERVAL_SECONDS,
    )
    version_check_requeue_seconds: float = field(
        metadata=field_options(alias="versionCheckRequeueSeconds"),
        default=DEFAULT_VERSION_CHECK_REQUEUE_SECONDS,
    )
    max_concurrent_reconciles: int = field(
        metadata=field_options(alias="maxConcurrentReconciles"), default=4
    )
    backoff_base_seconds: float = field(
        metadata=field_options(alias="backoffBaseSeconds"), default=0.5
    )
    backoff_max_seconds: float = field(
        metadata=field_options(alias="backoffMaxSeconds"), default=300
    )

    @property
    def gc_interval(self) -> timedelta:
        """Period between two garbage collection passes."""
        return timedelta(seconds=self.gc_interval_seconds)

    @property
    def version_check_requeue(self) -> timedelta:
        """Delay before retrying a resource when the NSX version is unsupported."""
        return timedelta(seconds=self.version_check_requeue_seconds)

    def __post_init__(self) -> None:
        if not self.cluster_name:
            raise InputException("Configuration requires a clusterName")
        if self.gc_interval_seconds <= 0:
            raise InputException(
                f"gcIntervalSeconds must be positive, got {self.gc_interval_seconds}"
            )
        if self.max_concurrent_reconciles < 1:
            raise InputException(
                "maxConcurrentReconciles must be at least 1, got "
                f"{self.max_concurrent_reconciles}"
            )

    class Config(BaseConfig):
        omit_none = True
        serialize_by_alias = True


def parse_config(content: str) -> OperatorConfig:
    """Parse an OperatorConfig from a YAML document."""
    try:
        return yaml_decode(content, OperatorConfig)
    except InputException:
        raise
    except Exception as err:
        raise InputException(f"Invalid configuration: {err}") from err


async def read_config(path: Path) -> OperatorConfig:
    """Read an OperatorConfig from a YAML file."""
    _LOGGER.debug("Reading configuration from %s", path)
    try:
        async with aiofiles.open(str(path)) as config_file:
            content = await config_file.read()
    except FileNotFoundError as err:
        raise InputException(f"Configuration file not found: {path}") from err
    return parse_config(content)
