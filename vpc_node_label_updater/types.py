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
"""Records exchanged with the VPC infrastructure and IAM APIs.

Only the fields the updater reads are modelled; everything else in the
payload is ignored. A payload whose shape does not match raises
``ValueError``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional


def _object(data: Any, what: str) -> Dict[str, Any]:
  if not isinstance(data, dict):
    raise ValueError(f"{what} is not an object")
  return data


def _str(data: Dict[str, Any], key: str) -> str:
  value = data.get(key)
  if value is None:
    return ""
  if not isinstance(value, str):
    raise ValueError(f"{key} is not a string")
  return value


def _int(data: Dict[str, Any], key: str) -> int:
  value = data.get(key)
  if value is None:
    return 0
  if isinstance(value, bool) or not isinstance(value, int):
    raise ValueError(f"{key} is not an integer")
  return value


@dataclass(frozen=True, slots=True)
class NodeInfo:
  instance_id: str
  region: str
  zone: str


@dataclass(frozen=True, slots=True)
class Zone:
  name: str = ""
  href: str = ""

  @classmethod
  def from_dict(cls, data: Dict[str, Any]) -> Zone:
    data = _object(data, "zone")
    return cls(name=_str(data, "name"), href=_str(data, "href"))


@dataclass(frozen=True, slots=True)
class NetworkInterface:
  id: str = ""
  name: str = ""
  primary_ipv4_address: str = ""

  @classmethod
  def from_dict(cls, data: Dict[str, Any]) -> NetworkInterface:
    data = _object(data, "primary_network_interface")
    return cls(
        id=_str(data, "id"),
        name=_str(data, "name"),
        primary_ipv4_address=_str(data, "primary_ipv4_address"),
    )


@dataclass(frozen=True, slots=True)
class Instance:
  id: str = ""
  name: str = ""
  status: str = ""
  zone: Optional[Zone] = None
  primary_network_interface: Optional[NetworkInterface] = None

  @classmethod
  def from_dict(cls, data: Dict[str, Any]) -> Instance:
    data = _object(data, "instance")
    zone = data.get("zone")
    nic = data.get("primary_network_interface")
    return cls(
        id=_str(data, "id"),
        name=_str(data, "name"),
        status=_str(data, "status"),
        zone=Zone.from_dict(zone) if zone is not None else None,
        primary_network_interface=(
            NetworkInterface.from_dict(nic) if nic is not None else None
        ),
    )

  @property
  def primary_ipv4_address(self) -> str:
    if self.primary_network_interface is None:
      return ""
    return self.primary_network_interface.primary_ipv4_address


@dataclass(frozen=True, slots=True)
class InstanceList:
  """One page of ``GET /v1/instances``."""

  instances: List[Instance]
  total_count: int = 0
  limit: int = 0
  next_href: Optional[str] = None

  @classmethod
  def from_dict(cls, data: Dict[str, Any]) -> InstanceList:
    data = _object(data, "instance list payload")
    items = data.get("instances")
    if items is None:
      items = []
    if not isinstance(items, list):
      raise ValueError("instances field is not a list")
    next_ref = data.get("next")
    return cls(
        instances=[Instance.from_dict(item) for item in items],
        total_count=_int(data, "total_count"),
        limit=_int(data, "limit"),
        next_href=(
            _str(_object(next_ref, "next"), "href") or None
            if next_ref is not None else None
        ),
    )


@dataclass(frozen=True, slots=True)
class AccessTokenResponse:
  access_token: str
  refresh_token: str = ""
  token_type: str = ""
  expires_in: int = 0
  expiration: int = 0

  @classmethod
  def from_dict(cls, data: Dict[str, Any]) -> AccessTokenResponse:
    data = _object(data, "access token response")
    access_token = _str(data, "access_token")
    if not access_token:
      raise ValueError("access_token missing from response")
    return cls(
        access_token=access_token,
        refresh_token=_str(data, "refresh_token"),
        token_type=_str(data, "token_type"),
        expires_in=_int(data, "expires_in"),
        expiration=_int(data, "expiration"),
    )
