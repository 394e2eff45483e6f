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
"""Applies VPC topology labels to a Kubernetes node."""

from __future__ import annotations

from typing import TYPE_CHECKING, Dict, Mapping, Optional

from kubernetes import client
from urllib3.exceptions import HTTPError

from vpc_node_label_updater.config import ConflictPolicy
from vpc_node_label_updater.constants import (
    CONFLICT_RETRY_INTERVAL,
    FAILURE_REGION_LABEL_KEY,
    FAILURE_ZONE_LABEL_KEY,
    INSTANCE_ID_LABEL_KEY,
    MAX_CONFLICT_ATTEMPTS,
    TOPOLOGY_REGION_LABEL_KEY,
    TOPOLOGY_ZONE_LABEL_KEY,
    VPC_BLOCK_LABEL_KEY,
    WORKER_ID_LABEL_KEY,
)
from vpc_node_label_updater.errors import NodeUpdateError
from vpc_node_label_updater.resolver import InstanceResolver
from vpc_node_label_updater.retry import error_retry
from vpc_node_label_updater.types import NodeInfo

if TYPE_CHECKING:
  from loguru import Logger

HTTP_CONFLICT = 409

ApiException = client.exceptions.ApiException


def _is_conflict(err: Optional[Exception]) -> bool:
  return isinstance(err, ApiException) and err.status == HTTP_CONFLICT


def _describe(err: Exception) -> str:
  if isinstance(err, ApiException):
    return f"{err.status} {err.reason}"
  return str(err)


def check_if_required_labels_present(
    labels: Optional[Mapping[str, str]]) -> bool:
  """True when the node was already labeled by this updater."""
  if not labels:
    return False
  # Nodes labeled by older releases only carry the instance id, so both
  # keys are required.
  return VPC_BLOCK_LABEL_KEY in labels and INSTANCE_ID_LABEL_KEY in labels


def node_labels(node_info: NodeInfo) -> Dict[str, str]:
  return {
      WORKER_ID_LABEL_KEY: node_info.instance_id,
      INSTANCE_ID_LABEL_KEY: node_info.instance_id,
      FAILURE_REGION_LABEL_KEY: node_info.region,
      FAILURE_ZONE_LABEL_KEY: node_info.zone,
      TOPOLOGY_REGION_LABEL_KEY: node_info.region,
      TOPOLOGY_ZONE_LABEL_KEY: node_info.zone,
      VPC_BLOCK_LABEL_KEY: "true",
  }


def apply_node_labels(
    node: client.V1Node, node_info: NodeInfo) -> client.V1Node:
  """Merges the topology labels into ``node`` in place."""
  if node.metadata.labels is None:
    node.metadata.labels = {}
  node.metadata.labels.update(node_labels(node_info))
  return node


class NodeLabelUpdater:
  """Resolves the node's instance and writes its labels with a full update."""

  def __init__(
      self,
      node: client.V1Node,
      kube: client.CoreV1Api,
      resolver: InstanceResolver,
      logger: Logger,
      conflict_policy: ConflictPolicy = ConflictPolicy.RETRY,
      max_conflict_attempts: int = MAX_CONFLICT_ATTEMPTS,
      conflict_retry_interval: float = CONFLICT_RETRY_INTERVAL,
      sleep=None,
  ):
    self.node = node
    self.kube = kube
    self.resolver = resolver
    self.logger = logger
    self.conflict_policy = conflict_policy
    self.max_conflict_attempts = max_conflict_attempts
    self.conflict_retry_interval = conflict_retry_interval
    self.sleep = sleep

  def _replace(self, node_name: str) -> Optional[Exception]:
    try:
      self.node = self.kube.replace_node(node_name, self.node)
    except (ApiException, HTTPError) as e:
      return e
    return None

  def _reapply_after_conflict(
      self, node_name: str, node_info: NodeInfo) -> Optional[Exception]:

    def _attempt():
      try:
        self.node = self.kube.read_node(node_name)
      except (ApiException, HTTPError) as e:
        return e, True
      apply_node_labels(self.node, node_info)
      err = self._replace(node_name)
      return err, not _is_conflict(err)

    kwargs = {
        "max_attempts": self.max_conflict_attempts,
        "interval": self.conflict_retry_interval,
    }
    if self.sleep is not None:
      kwargs["sleep"] = self.sleep
    return error_retry(self.logger, _attempt, **kwargs)

  def update_node_label(self, node_name: str) -> bool:
    """Labels the node.

    Returns:
      True when the labels were written. False when the write lost a
      conflict and the policy is to ignore it.

    Raises:
      InstanceLookupError: The backing instance could not be resolved.
      NodeUpdateError: The cluster rejected the update or could not be
        reached.
    """
    node_info = self.resolver.get_worker_details(node_name)
    apply_node_labels(self.node, node_info)

    err = self._replace(node_name)
    if _is_conflict(err):
      if self.conflict_policy is ConflictPolicy.IGNORE:
        self.logger.warning(
            "Node {} was modified concurrently; leaving labels as they are",
            node_name)
        return False
      if self.conflict_policy is ConflictPolicy.RETRY:
        self.logger.warning(
            "Node {} was modified concurrently; re-reading and re-applying",
            node_name)
        err = self._reapply_after_conflict(node_name, node_info)

    if err is not None:
      raise NodeUpdateError(
          f"failed to update labels on node {node_name}: "
          f"{_describe(err)}") from err

    self.logger.info(
        "Added required labels for the node {}: {}",
        node_name, node_labels(node_info))
    return True
