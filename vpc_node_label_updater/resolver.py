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
"""Finds the VPC instance backing a worker node.

A worker is looked up by name unless its name is a literal IP address, in
which case the full instance list is scanned for a matching primary IPv4
address.
"""

from __future__ import annotations

import abc
import ipaddress
from typing import TYPE_CHECKING, List, Optional, Protocol

import requests

from vpc_node_label_updater.constants import REQUEST_TIMEOUT
from vpc_node_label_updater.credentials import StorageSecretConfig
from vpc_node_label_updater.errors import (
    EmptyInstanceListError,
    InstanceLookupError,
    InvalidZoneError,
    WorkerNotFoundError,
)
from vpc_node_label_updater.retry import error_retry, is_connection_error
from vpc_node_label_updater.types import Instance, InstanceList, NodeInfo

if TYPE_CHECKING:
  from loguru import Logger


def region_from_zone(zone: Optional[str]) -> str:
  """Strips the trailing ``-<n>`` segment: ``us-south-1`` -> ``us-south``."""
  if not zone:
    raise InvalidZoneError(zone)
  region, sep, _ = zone.rpartition("-")
  if not sep or not region:
    raise InvalidZoneError(zone)
  return region


def is_ip_address(worker: str) -> bool:
  try:
    ipaddress.ip_address(worker)
  except ValueError:
    return False
  return True


class InstanceResolver(Protocol):

  def get_worker_details(self, worker_node_name: str) -> NodeInfo:
    ...


class BaseInstanceResolver(abc.ABC):
  """Dispatch, matching and region derivation shared by all resolvers."""

  def __init__(self, logger: Logger):
    self.logger = logger

  @abc.abstractmethod
  def list_instances(self, name: Optional[str] = None) -> List[Instance]:
    """Returns the instances visible to the caller, optionally name-filtered.

    Raises:
      EmptyInstanceListError: No instances were returned.
      InstanceLookupError: The list could not be fetched or decoded.
    """

  def get_worker_details(self, worker_node_name: str) -> NodeInfo:
    if is_ip_address(worker_node_name):
      self.logger.info(
          "Worker node name is in ip format. Getting instance detail by "
          "ipv4 from vpc provider")
      return self.get_instance_by_ip(worker_node_name)
    self.logger.info(
        "Worker node name is not in ip format. Getting instance detail by "
        "name from vpc provider")
    return self.get_instance_by_name(worker_node_name)

  def get_instance_by_ip(self, worker_node_name: str) -> NodeInfo:
    for instance in self.list_instances():
      if instance.primary_ipv4_address == worker_node_name:
        self.logger.info("Successfully found instance {}", instance.id)
        return self.get_node_info(instance)
    raise WorkerNotFoundError(worker_node_name)

  def get_instance_by_name(self, worker_node_name: str) -> NodeInfo:
    # The API filters by name; the match is checked again here.
    for instance in self.list_instances(name=worker_node_name):
      if instance.name == worker_node_name:
        return self.get_node_info(instance)
    raise WorkerNotFoundError(worker_node_name)

  def get_node_info(self, instance: Instance) -> NodeInfo:
    zone = instance.zone.name if instance.zone else ""
    node_info = NodeInfo(
        instance_id=instance.id,
        region=region_from_zone(zone),
        zone=zone,
    )
    self.logger.info(
        "Successfully fetched node detail from VPC provider: {}", node_info)
    return node_info


class VpcInstanceResolver(BaseInstanceResolver):
  """Resolves instances through the VPC infrastructure (RIAAS) API.

  Without an injected session, each listing opens its own and closes it
  once the last page is read.
  """

  def __init__(
      self,
      secret_config: StorageSecretConfig,
      logger: Logger,
      session: Optional[requests.Session] = None,
      **retry_kwargs,
  ):
    super().__init__(logger)
    self.secret_config = secret_config
    self.session = session
    self.retry_kwargs = retry_kwargs

  def _headers(self):
    token = self.secret_config.iam_access_token
    if token and not token.lower().startswith("bearer "):
      token = f"Bearer {token}"
    return {
        "Content-Type": "application/json",
        "Accept": "application/json",
        "Authorization": token,
    }

  def _get_page(
      self, session: requests.Session, url: str, params) -> InstanceList:
    response: Optional[requests.Response] = None

    def _get():
      nonlocal response
      try:
        response = session.get(
            url, params=params, headers=self._headers(),
            timeout=REQUEST_TIMEOUT)
      except requests.RequestException as e:
        return e, not is_connection_error(e)
      return None, True

    err = error_retry(self.logger, _get, **self.retry_kwargs)
    if err is not None:
      raise InstanceLookupError(f"GET {url!r}: {err}") from err
    if not response.ok:
      raise InstanceLookupError(
          f"instance list request failed with status code "
          f"{response.status_code}")
    try:
      return InstanceList.from_dict(response.json())
    except ValueError as e:
      raise InstanceLookupError(
          "failed to unmarshal json response of instances") from e

  def list_instances(self, name: Optional[str] = None) -> List[Instance]:
    self.logger.info("Getting instance list from VPC provider")
    if self.session is not None:
      instances = self._list_pages(self.session, name)
    else:
      with requests.Session() as session:
        instances = self._list_pages(session, name)
    if not instances:
      raise EmptyInstanceListError()
    return instances

  def _list_pages(
      self, session: requests.Session, name: Optional[str]) -> List[Instance]:
    params = {"name": name} if name else None
    url: Optional[str] = self.secret_config.riaas_endpoint_url
    instances: List[Instance] = []
    seen = set()
    while True:
      seen.add(url)
      page = self._get_page(session, url, params)
      instances.extend(page.instances)
      url, params = page.next_href, None
      if not url or url in seen:
        break
    return instances


class FakeInstanceResolver(BaseInstanceResolver):
  """Serves a fixed instance list; the name filter behaves like the API's."""

  def __init__(self, instances: List[Instance], logger: Logger):
    super().__init__(logger)
    self.instances = list(instances)
    self.calls: List[Optional[str]] = []

  def list_instances(self, name: Optional[str] = None) -> List[Instance]:
    self.calls.append(name)
    found = [i for i in self.instances if name is None or i.name == name]
    if not found:
      raise EmptyInstanceListError()
    return found
