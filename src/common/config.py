from __future__ import annotations

import os
from typing import Dict, Iterable, Optional

import boto3
from botocore.exceptions import ClientError


# Environment variable names shared by the producer and the consumer
ENV_GITHUB_TOKEN = "GITHUB_TOKEN"
ENV_ASSET_KEY = "NUXT_PUBLIC_ASSET_KEY"
ENV_SITE_URL = "NUXT_PUBLIC_SITE_URL"
ENV_ASSET_ENCRYPTED = "NUXT_PUBLIC_ASSET_ENCRYPTED"
ENV_PARAM_PREFIX = "PARAM_PREFIX"

_TRUTHY = {"1", "true", "yes", "on"}


class ConfigurationError(RuntimeError):
    """Required configuration (token, key, URL) is missing."""


def getenv(name: str, default: Optional[str] = None) -> Optional[str]:
    val = os.environ.get(name)
    return val if val not in (None, "") else default


def getenv_bool(name: str, default: bool = False) -> bool:
    val = getenv(name)
    if val is None:
        return default
    return val.strip().lower() in _TRUTHY


def require(v: Optional[str], what: str) -> str:
    if not v:
        raise ConfigurationError(f"Missing required configuration: {what}")
    return v


def load_ssm_params(
    prefix: str, names: Iterable[str], *, ssm: Optional[object] = None
) -> Dict[str, Optional[str]]:
    """Read `prefix + name` for each name from SSM Parameter Store.

    Missing or access-denied parameters come back as None.
    """
    client = ssm or boto3.client("ssm")
    names = list(names)
    out: Dict[str, Optional[str]] = {k: None for k in names}
    for name in names:
        full = f"{prefix}{name}"
        try:
            resp = client.get_parameter(Name=full, WithDecryption=True)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in ("ParameterNotFound", "AccessDeniedException"):
                out[name] = None
                continue
            raise
        val = resp.get("Parameter", {}).get("Value")
        out[name] = val if isinstance(val, str) and val != "" else None
    return out


def resolve_secrets(names: Dict[str, str], *, ssm: Optional[object] = None) -> Dict[str, Optional[str]]:
    """
    Resolve secrets from the environment, falling back to SSM.

    `names` maps an SSM parameter name to its environment variable, e.g.
    {"github_token": "GITHUB_TOKEN"}. SSM is only consulted when
    PARAM_PREFIX is set and at least one value is missing from the env.
    """
    out: Dict[str, Optional[str]] = {param: getenv(env) for param, env in names.items()}
    prefix = getenv(ENV_PARAM_PREFIX)
    missing = [param for param, val in out.items() if val is None]
    if prefix and missing:
        out.update(load_ssm_params(prefix, missing, ssm=ssm))
    return out


__all__ = [
    "ConfigurationError",
    "getenv",
    "getenv_bool",
    "load_ssm_params",
    "require",
    "resolve_secrets",
]
