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
"""Init step that labels this node with its VPC region, zone and instance."""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING, Callable, Optional

from kubernetes import client

from vpc_node_label_updater import kube
from vpc_node_label_updater.config import (
    SecretProvider,
    Settings,
    read_storage_secret_configuration,
)
from vpc_node_label_updater.errors import ConfigurationError, LabelUpdaterError
from vpc_node_label_updater.labels import (
    NodeLabelUpdater,
    check_if_required_labels_present,
)
from vpc_node_label_updater.log import setup_logger
from vpc_node_label_updater.resolver import (
    InstanceResolver,
    VpcInstanceResolver,
)

if TYPE_CHECKING:
  from loguru import Logger

  from vpc_node_label_updater.credentials import StorageSecretConfig

ResolverFactory = Callable[["StorageSecretConfig", "Logger"], InstanceResolver]


def update_node_labels(
    kube_client: client.CoreV1Api,
    settings: Settings,
    logger: Logger,
    secret_provider: Optional[SecretProvider] = None,
    resolver_factory: ResolverFactory = VpcInstanceResolver,
) -> bool:
  """Labels ``settings.node_name`` unless it is already labeled.

  Returns:
    True when labels were written, False when nothing was written.

  Raises:
    LabelUpdaterError: Any step failed.
  """
  if not settings.node_name:
    raise ConfigurationError("NODE_NAME is not set")

  logger.info("Getting node details")
  node = kube.get_node(kube_client, settings.node_name, logger)

  if check_if_required_labels_present(node.metadata.labels):
    logger.info("Required labels already present on the worker node")
    return False

  secret_config = read_storage_secret_configuration(
      settings, logger, secret_provider=secret_provider)
  updater = NodeLabelUpdater(
      node=node,
      kube=kube_client,
      resolver=resolver_factory(secret_config, logger),
      logger=logger,
      conflict_policy=settings.conflict_policy,
  )
  return updater.update_node_label(settings.node_name)


def main() -> None:
  try:
    settings = Settings.from_env()
  except ConfigurationError as e:
    setup_logger().critical("Invalid configuration: {}", e)
    sys.exit(1)

  logger = setup_logger(settings.debug)
  logger.info("Starting controller for adding node labels")
  try:
    kube_client = kube.get_client(logger)
    update_node_labels(kube_client, settings, logger)
  except LabelUpdaterError as e:
    logger.critical(
        "Error in updating labels for node {}: {}", settings.node_name, e)
    sys.exit(1)


if __name__ == "__main__":
  main()
