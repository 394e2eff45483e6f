# Copyright 2024 Google Inc. All Rights Reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""Runtime settings and storage secret configuration.

Settings come from the environment. Credentials come either from the
``slclient.toml`` secret file, section ``[VPC]``::

    [VPC]
    g2_riaas_endpoint_url = "https://us-south.iaas.cloud.ibm.com"
    g2_token_exchange_endpoint_url = "https://iam.cloud.ibm.com"
    g2_api_key = "..."
    iam_client_id = "bx"
    iam_client_secret = "bx"

or from an external ``SecretProvider`` that already holds a token.
"""

from __future__ import annotations

import base64
import binascii
import enum
import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional, Protocol

import requests

from vpc_node_label_updater.constants import (
    CONFIG_FILE_NAME,
    DEFAULT_CONFIG_DIR,
    VPC_GENERATION,
    VPC_RIAAS_VERSION,
)
from vpc_node_label_updater.credentials import StorageSecretConfig
from vpc_node_label_updater.errors import ConfigurationError

if TYPE_CHECKING:
  from loguru import Logger


class ConflictPolicy(enum.Enum):
  """What to do when the node update loses an optimistic-concurrency race."""

  RETRY = "retry"
  IGNORE = "ignore"
  FAIL = "fail"


def _flag(env: Mapping[str, str], name: str) -> bool:
  return env.get(name, "false").lower() == "true"


def _cluster_flag(env: Mapping[str, str], name: str) -> bool:
  # Exact match: "true" and "TRUE" leave the flag off.
  return env.get(name) == "True"


@dataclass(frozen=True, slots=True)
class Settings:
  node_name: str = ""
  config_dir: str = DEFAULT_CONFIG_DIR
  iks_enabled: bool = False
  is_satellite: bool = False
  debug: bool = False
  conflict_policy: ConflictPolicy = ConflictPolicy.RETRY

  @property
  def config_path(self) -> Path:
    return Path(self.config_dir) / CONFIG_FILE_NAME

  @property
  def decode_api_key(self) -> bool:
    """Satellite (unmanaged) clusters store the API key base64 encoded."""
    return self.is_satellite and not self.iks_enabled

  @classmethod
  def from_env(cls, env: Optional[Mapping[str, str]] = None) -> Settings:
    env = os.environ if env is None else env
    policy = env.get("NODE_UPDATE_CONFLICT_POLICY", ConflictPolicy.RETRY.value)
    try:
      conflict_policy = ConflictPolicy(policy.lower())
    except ValueError:
      raise ConfigurationError(
          f"unknown NODE_UPDATE_CONFLICT_POLICY {policy!r}") from None
    return cls(
        node_name=env.get("NODE_NAME", ""),
        config_dir=env.get("SECRET_CONFIG_PATH") or DEFAULT_CONFIG_DIR,
        iks_enabled=_cluster_flag(env, "IKS_ENABLED"),
        is_satellite=_cluster_flag(env, "IS_SATELLITE"),
        debug=_flag(env, "DEBUG"),
        conflict_policy=conflict_policy,
    )


class SecretProvider(Protocol):
  """An external identity source that already holds a token."""

  def get_access_token(self) -> str:
    ...

  def get_riaas_endpoint_url(self) -> str:
    ...


@dataclass(frozen=True, slots=True)
class VPCConfig:
  endpoint_url: str
  token_exchange_url: str
  api_key: str
  iam_client_id: str = ""
  iam_client_secret: str = ""

  @classmethod
  def from_dict(cls, data: Dict[str, Any]) -> VPCConfig:
    vpc = data.get("VPC")
    if not isinstance(vpc, dict):
      raise ConfigurationError(
          "[VPC] section missing from secret configuration")
    missing = [
        key for key in (
            "g2_riaas_endpoint_url",
            "g2_token_exchange_endpoint_url",
            "g2_api_key",
        ) if not vpc.get(key)
    ]
    if missing:
      raise ConfigurationError(
          f"secret configuration is missing {', '.join(missing)}")
    return cls(
        endpoint_url=vpc["g2_riaas_endpoint_url"],
        token_exchange_url=vpc["g2_token_exchange_endpoint_url"],
        api_key=vpc["g2_api_key"],
        iam_client_id=vpc.get("iam_client_id", ""),
        iam_client_secret=vpc.get("iam_client_secret", ""),
    )


def read_toml(path: Path, logger: Logger) -> Dict[str, Any]:
  logger.info("Parsing conf file: {}", path)
  try:
    with path.open("rb") as f:
      return tomllib.load(f)
  except (OSError, tomllib.TOMLDecodeError) as e:
    logger.error("Failed to parse config file {}: {}", path, e)
    raise ConfigurationError(f"failed to parse {path}: {e}") from e


def get_endpoint_url(url: str, logger: Logger) -> str:
  """Rewrites an ``http://`` endpoint to ``https://``."""
  if url.startswith("http://"):
    logger.warning(
        "Endpoint URL {} is of the form 'http' instead of 'https'. "
        "Correcting it for valid request.", url)
    return "https://" + url[len("http://"):]
  return url


def riaas_instances_url(endpoint_url: str) -> str:
  return (f"{endpoint_url.rstrip('/')}/v1/instances"
          f"?generation={VPC_GENERATION}&version={VPC_RIAAS_VERSION}")


def decode_api_key(api_key: str) -> str:
  try:
    return base64.b64decode(api_key, validate=True).decode("utf-8")
  except (binascii.Error, UnicodeDecodeError) as e:
    raise ConfigurationError("failed to decode base64 API key") from e


def build_storage_secret_config(
    vpc: VPCConfig, settings: Settings, logger: Logger) -> StorageSecretConfig:
  api_key = vpc.api_key
  if settings.decode_api_key:
    logger.info("Decoding apiKey since it's a satellite cluster")
    api_key = decode_api_key(api_key)

  endpoint_url = get_endpoint_url(vpc.endpoint_url, logger)
  token_exchange_url = get_endpoint_url(vpc.token_exchange_url, logger)

  return StorageSecretConfig(
      riaas_endpoint_url=riaas_instances_url(endpoint_url),
      api_key=api_key,
      iam_token_exchange_url=f"{token_exchange_url.rstrip('/')}/oidc/token",
      basic_auth_string=f"{vpc.iam_client_id}:{vpc.iam_client_secret}",
  )


def read_storage_secret_configuration(
    settings: Settings,
    logger: Logger,
    secret_provider: Optional[SecretProvider] = None,
    session: Optional[requests.Session] = None,
    **retry_kwargs,
) -> StorageSecretConfig:
  """Builds credentials for this run and obtains an access token.

  Raises:
    ConfigurationError: The secret configuration is missing or invalid.
    TokenExchangeError: The API key could not be exchanged.
  """
  logger.info("Fetching secret configuration")
  if secret_provider is not None:
    endpoint_url = get_endpoint_url(
        secret_provider.get_riaas_endpoint_url(), logger)
    return StorageSecretConfig(
        riaas_endpoint_url=riaas_instances_url(endpoint_url),
        iam_access_token=secret_provider.get_access_token(),
    )

  vpc = VPCConfig.from_dict(read_toml(settings.config_path, logger))
  secret_config = build_storage_secret_config(vpc, settings, logger)
  secret_config.refresh_access_token(logger, session, **retry_kwargs)
  return secret_config
