"""
Secret loading for the back-office service

Lookup order for a secret named ``cron_token``:
1. /run/secrets/cron_token (Docker / Kubernetes mounted secret)
2. File named by the CRON_TOKEN_FILE environment variable
3. CRON_TOKEN environment variable
4. The supplied default

Secrets are never logged, only the source they were read from.
"""
import os
from pathlib import Path
from typing import Optional
import structlog

logger = structlog.get_logger()

SECRETS_DIR = Path("/run/secrets")


def _read_secret_file(path: Path, secret_name: str, source: str) -> Optional[str]:
    """Read a secret file, returning None (and logging) if it cannot be read"""
    try:
        value = path.read_text().strip()
    except OSError as e:
        logger.error("secret_read_error", secret_name=secret_name, path=str(path), error=str(e))
        return None

    logger.debug("secret_loaded", secret_name=secret_name, source=source)
    return value


def load_secret(
    secret_name: str,
    default: Optional[str] = None,
    required: bool = False
) -> Optional[str]:
    """
    Load a secret from the mounted secrets directory, a file, or the environment

    Args:
        secret_name: Name of the secret (e.g., "cron_token")
        default: Value returned when nothing else is found
        required: Raise ValueError instead of returning None

    Raises:
        ValueError: required=True and the secret was not found
        FileNotFoundError: {NAME}_FILE points to a missing file
    """
    name = secret_name.lower().replace("-", "_")
    env_var_name = name.upper()

    mounted = SECRETS_DIR / name
    if mounted.exists():
        value = _read_secret_file(mounted, name, "docker_secret")
        if value is not None:
            return value

    env_file_var = f"{env_var_name}_FILE"
    file_path = os.getenv(env_file_var)
    if file_path:
        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(
                f"Secret file specified by {env_file_var}={file_path} does not exist"
            )
        value = _read_secret_file(path, name, "env_file")
        if value is not None:
            return value

    env_value = os.getenv(env_var_name)
    if env_value:
        logger.debug("secret_loaded", secret_name=name, source="env_var")
        return env_value

    if default is not None:
        logger.debug("secret_loaded", secret_name=name, source="default", is_production_safe=False)
        return default

    if required:
        raise ValueError(
            f"Required secret '{name}' not found. "
            f"Checked: {mounted}, {env_file_var}, {env_var_name}"
        )

    logger.debug("secret_not_found", secret_name=name)
    return None
