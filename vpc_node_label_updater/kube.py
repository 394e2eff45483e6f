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
"""Kubernetes client construction and node lookup."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from kubernetes import client
from kubernetes import config
from urllib3.exceptions import HTTPError

from vpc_node_label_updater.errors import ConfigurationError, NodeUpdateError
from vpc_node_label_updater.retry import error_retry

if TYPE_CHECKING:
  from loguru import Logger

HTTP_NOT_FOUND = 404


def get_client(logger: Logger) -> client.CoreV1Api:
  """Uses the pod's service account, falling back to ~/.kube/config."""
  try:
    config.load_incluster_config()
  except config.ConfigException as in_cluster_err:
    logger.error("Failed to create in-cluster config: {}", in_cluster_err)
    try:
      config.load_kube_config()
    except (config.ConfigException, OSError) as kubeconfig_err:
      raise ConfigurationError(
          "in-cluster config as well as kubeconfig failed. "
          f"In-cluster error: {in_cluster_err}; "
          f"kubeconfig error: {kubeconfig_err}") from kubeconfig_err
  return client.CoreV1Api()


def get_node(
    kube: client.CoreV1Api, node_name: str, logger: Logger,
    **retry_kwargs) -> client.V1Node:
  """Reads the node, retrying everything except "not found".

  Raises:
    NodeUpdateError: The node does not exist or could not be read.
  """
  node: Optional[client.V1Node] = None

  def _read():
    nonlocal node
    try:
      node = kube.read_node(node_name)
    except client.exceptions.ApiException as e:
      if e.status == HTTP_NOT_FOUND:
        logger.error("Node {} no longer exists in the cluster", node_name)
        return e, True
      return e, False
    except HTTPError as e:
      return e, False
    return None, True

  err = error_retry(logger, _read, **retry_kwargs)
  if err is not None or node is None:
    raise NodeUpdateError(
        f"failed to get details of node {node_name}: {err}") from err
  return node
