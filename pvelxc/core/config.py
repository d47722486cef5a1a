"""pvelxc runtime configuration and settings."""
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_timeout(value: str) -> Optional[float]:
    """Parse a timeout; 0 or empty means unbounded."""
    if not value.strip():
        return None
    parsed = float(value)
    return parsed if parsed > 0 else None


@dataclass
class LifecycleConfig:
    """Timing and retry knobs for the lifecycle convergence engine.

    Intervals are in seconds. Timeouts of ``None`` or ``0`` mean "wait until
    the remote side confirms" and only a cancellation event can interrupt
    them.

    Attributes:
        status_interval: Wait before every status poll (default: 8)
        status_retries: Transition-call error budget per convergence (default: 5)
        status_query_retries: Status query error budget; 1 aborts on first failure
        status_timeout: Upper bound for one convergence (default: unbounded)
        exec_shell: Shell used to run container commands (default: bash)
        exec_submit_retries: Submission attempts per command (default: 3)
        exec_submit_delay: Base wait after a failed submission (default: 3)
        exec_result_retries: Result-poll attempts per command (default: 3)
        exec_result_interval: Wait before every result poll (default: 2)
        exec_timeout: Upper bound for one command's result polling
        network_retries: Interface resolution attempts (default: 3)
        network_interval: Wait before every resolution attempt (default: 15)
        delete_settle_delay: Wait before the deletion pipeline acts (default: 15)
        delete_stop_interval: Stop confirmation poll interval (default: 5)
        delete_stop_timeout: Stop confirmation bound (default: 600)
        delete_free_interval: vmid release poll interval (default: 2)
        delete_free_timeout: vmid release bound (default: 600)
        retry_backoff: Multiplier applied to error-retry waits (default: 2.0)
        retry_max_delay: Ceiling for any backed-off wait (default: 60)
        retry_jitter: Fractional jitter applied to error-retry waits (default: 0.1)
    """

    status_interval: float = 8.0
    status_retries: int = 5
    status_query_retries: int = 1
    status_timeout: Optional[float] = None

    exec_shell: str = "bash"
    exec_submit_retries: int = 3
    exec_submit_delay: float = 3.0
    exec_result_retries: int = 3
    exec_result_interval: float = 2.0
    exec_timeout: Optional[float] = None

    network_retries: int = 3
    network_interval: float = 15.0

    delete_settle_delay: float = 15.0
    delete_stop_interval: float = 5.0
    delete_stop_timeout: Optional[float] = 600.0
    delete_free_interval: float = 2.0
    delete_free_timeout: Optional[float] = 600.0

    retry_backoff: float = 2.0
    retry_max_delay: float = 60.0
    retry_jitter: float = 0.1

    @classmethod
    def from_env(cls) -> "LifecycleConfig":
        """Create config from environment variables.

        Every field can be overridden with ``PVELXC_<FIELD_NAME>`` (upper
        case), e.g. ``PVELXC_STATUS_INTERVAL=4`` or
        ``PVELXC_DELETE_FREE_TIMEOUT=0`` for an unbounded wait.

        Returns:
            LifecycleConfig instance with values from environment or defaults
        """
        values: Dict[str, Any] = {}
        for field in fields(cls):
            raw = os.getenv(f"PVELXC_{field.name.upper()}")
            if raw is None:
                continue
            if field.name.endswith("_timeout"):
                values[field.name] = _env_timeout(raw)
            elif field.type is int:
                values[field.name] = int(raw)
            elif field.type is float:
                values[field.name] = float(raw)
            else:
                values[field.name] = raw
        return cls(**values)

    def without_delays(self) -> "LifecycleConfig":
        """Copy with every wait set to zero (mock mode and tests)."""
        waits = {
            field.name: 0.0
            for field in fields(self)
            if field.name.endswith(("_interval", "_delay")) and field.name != "retry_max_delay"
        }
        return replace(self, **waits)


@dataclass
class GatewaySettings:
    """Connection settings for the Proxmox VE HTTP API."""

    host: str = "localhost"
    port: int = 8006
    user: str = "root@pam"
    token_name: Optional[str] = None
    token: Optional[str] = None
    insecure_skip_verify: bool = False
    cf_client_id: Optional[str] = None
    cf_client_secret: Optional[str] = None
    request_timeout: float = 30.0

    @property
    def base_url(self) -> str:
        return f"https://{self.host}:{self.port}/api2/json"

    @classmethod
    def from_env(cls) -> "GatewaySettings":
        """Create settings from PROXMOX_* and CF_* environment variables."""
        return cls(
            host=os.getenv("PROXMOX_HOST", cls.host),
            port=int(os.getenv("PROXMOX_PORT", cls.port)),
            user=os.getenv("PROXMOX_USER", cls.user),
            token_name=os.getenv("PROXMOX_TOKEN_NAME"),
            token=os.getenv("PROXMOX_TOKEN"),
            insecure_skip_verify=_env_bool(os.getenv("PROXMOX_INSECURE_SKIP_VERIFY", "")),
            cf_client_id=os.getenv("CF_CLIENT_ID"),
            cf_client_secret=os.getenv("CF_CLIENT_SECRET"),
        )

    @classmethod
    def from_file(cls, path: str) -> "GatewaySettings":
        """Load settings from a YAML file, letting the environment fill gaps.

        The file holds a top-level ``proxmox`` mapping whose keys match the
        dataclass fields. Keys absent from the file fall back to
        :meth:`from_env`.
        """
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Gateway config not found: {config_path}")

        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}

        section = raw.get("proxmox", raw)
        known = {field.name for field in fields(cls)}
        unknown = set(section) - known
        if unknown:
            raise ValueError(f"Unknown gateway settings: {', '.join(sorted(unknown))}")

        base = cls.from_env()
        for key, value in section.items():
            setattr(base, key, value)
        return base


# Global config instance (can be overridden)
_config: Optional[LifecycleConfig] = None


def get_config() -> LifecycleConfig:
    """Get the global lifecycle configuration.

    Returns:
        LifecycleConfig instance (creates from environment if not set)
    """
    global _config
    if _config is None:
        _config = LifecycleConfig.from_env()
    return _config


def set_config(config: Optional[LifecycleConfig]):
    """Set the global lifecycle configuration.

    Args:
        config: LifecycleConfig instance to use globally, or None to reset
    """
    global _config
    _config = config
