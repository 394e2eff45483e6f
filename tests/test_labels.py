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

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from kubernetes import client
from urllib3.exceptions import MaxRetryError

from conftest import make_node
from vpc_node_label_updater.config import ConflictPolicy
from vpc_node_label_updater.constants import (
    FAILURE_REGION_LABEL_KEY,
    FAILURE_ZONE_LABEL_KEY,
    INSTANCE_ID_LABEL_KEY,
    TOPOLOGY_REGION_LABEL_KEY,
    TOPOLOGY_ZONE_LABEL_KEY,
    VPC_BLOCK_LABEL_KEY,
    WORKER_ID_LABEL_KEY,
)
from vpc_node_label_updater.errors import (
    EmptyInstanceListError,
    NodeUpdateError,
)
from vpc_node_label_updater.labels import (
    NodeLabelUpdater,
    apply_node_labels,
    check_if_required_labels_present,
)
from vpc_node_label_updater.resolver import FakeInstanceResolver
from vpc_node_label_updater.types import NodeInfo

NODE_INFO = NodeInfo(instance_id="instance-id", region="us-south",
                     zone="us-south-1")

EXPECTED_LABELS = {
    "test": "test",
    WORKER_ID_LABEL_KEY: "instance-id",
    INSTANCE_ID_LABEL_KEY: "instance-id",
    FAILURE_REGION_LABEL_KEY: "us-south",
    FAILURE_ZONE_LABEL_KEY: "us-south-1",
    TOPOLOGY_REGION_LABEL_KEY: "us-south",
    TOPOLOGY_ZONE_LABEL_KEY: "us-south-1",
    VPC_BLOCK_LABEL_KEY: "true",
}


def conflict():
  return client.exceptions.ApiException(status=409, reason="Conflict")


class TestCheckIfRequiredLabelsPresent:

  def test_empty(self):
    assert not check_if_required_labels_present({})
    assert not check_if_required_labels_present(None)

  def test_sentinel_only(self):
    assert not check_if_required_labels_present({VPC_BLOCK_LABEL_KEY: "true"})

  def test_instance_id_only(self):
    assert not check_if_required_labels_present({INSTANCE_ID_LABEL_KEY: "id"})

  def test_both_present(self):
    assert check_if_required_labels_present({
        VPC_BLOCK_LABEL_KEY: "true",
        INSTANCE_ID_LABEL_KEY: "id",
    })

  def test_agrees_with_applied_labels(self):
    node = apply_node_labels(make_node(), NODE_INFO)
    assert check_if_required_labels_present(node.metadata.labels)


class TestApplyNodeLabels:

  def test_merges_labels(self):
    node = apply_node_labels(make_node(), NODE_INFO)
    assert node.metadata.labels == EXPECTED_LABELS

  def test_is_idempotent(self):
    node = apply_node_labels(make_node(), NODE_INFO)
    apply_node_labels(node, NODE_INFO)
    assert node.metadata.labels == EXPECTED_LABELS

  def test_overwrites_stale_values(self):
    node = make_node(labels={TOPOLOGY_ZONE_LABEL_KEY: "eu-de-1"})
    apply_node_labels(node, NODE_INFO)
    assert node.metadata.labels[TOPOLOGY_ZONE_LABEL_KEY] == "us-south-1"

  def test_node_without_labels(self):
    node = client.V1Node(metadata=client.V1ObjectMeta(name="bare"))
    apply_node_labels(node, NODE_INFO)
    assert node.metadata.labels[INSTANCE_ID_LABEL_KEY] == "instance-id"


@pytest.fixture
def kube():
  kube = MagicMock(spec=client.CoreV1Api)
  kube.replace_node.side_effect = lambda name, body: body
  return kube


def _updater(kube, instances, logger, sleeps=None, **kwargs):
  return NodeLabelUpdater(
      node=make_node(name="valid-worker"),
      kube=kube,
      resolver=FakeInstanceResolver(instances, logger),
      logger=logger,
      sleep=sleeps.append if sleeps is not None else None,
      **kwargs,
  )


class TestNodeLabelUpdater:

  def test_valid_request(self, kube, instances, logger):
    updater = _updater(kube, instances, logger)
    assert updater.update_node_label("valid-worker")

    name, body = kube.replace_node.call_args.args
    assert name == "valid-worker"
    assert body.metadata.labels == {
        **EXPECTED_LABELS,
        WORKER_ID_LABEL_KEY: "valid-instance-id",
        INSTANCE_ID_LABEL_KEY: "valid-instance-id",
    }
    kube.patch_node.assert_not_called()

  def test_resolver_failure_skips_update(self, kube, logger):
    updater = _updater(kube, [], logger)
    with pytest.raises(EmptyInstanceListError):
      updater.update_node_label("valid-worker")
    kube.replace_node.assert_not_called()

  def test_non_conflict_error_fails(self, kube, instances, logger):
    kube.replace_node.side_effect = client.exceptions.ApiException(
        status=403, reason="Forbidden")
    updater = _updater(kube, instances, logger)
    with pytest.raises(NodeUpdateError, match="403 Forbidden"):
      updater.update_node_label("valid-worker")

  def test_conflict_ignored(self, kube, instances, logger):
    kube.replace_node.side_effect = conflict()
    updater = _updater(kube, instances, logger,
                       conflict_policy=ConflictPolicy.IGNORE)
    assert updater.update_node_label("valid-worker") is False
    kube.read_node.assert_not_called()

  def test_conflict_fails(self, kube, instances, logger):
    kube.replace_node.side_effect = conflict()
    updater = _updater(kube, instances, logger,
                       conflict_policy=ConflictPolicy.FAIL)
    with pytest.raises(NodeUpdateError, match="409"):
      updater.update_node_label("valid-worker")

  def test_conflict_rereads_and_reapplies(self, kube, instances, logger):
    fresh = make_node(name="valid-worker", labels={"added-by": "other"})
    kube.read_node.return_value = fresh
    kube.replace_node.side_effect = [conflict(), fresh]
    sleeps = []
    updater = _updater(kube, instances, logger, sleeps=sleeps)

    assert updater.update_node_label("valid-worker")

    kube.read_node.assert_called_once_with("valid-worker")
    name, body = kube.replace_node.call_args.args
    assert body is fresh
    assert body.metadata.labels["added-by"] == "other"
    assert body.metadata.labels[INSTANCE_ID_LABEL_KEY] == "valid-instance-id"
    assert sleeps == []

  def test_conflict_retries_are_bounded(self, kube, instances, logger):
    kube.read_node.side_effect = lambda name: make_node(name=name)
    kube.replace_node.side_effect = conflict()
    sleeps = []
    updater = _updater(kube, instances, logger, sleeps=sleeps,
                       max_conflict_attempts=3, conflict_retry_interval=0.1)

    with pytest.raises(NodeUpdateError, match="409"):
      updater.update_node_label("valid-worker")

    assert kube.replace_node.call_count == 4
    assert kube.read_node.call_count == 3
    assert sleeps == [0.1, 0.1]

  def test_reread_failure_is_terminal(self, kube, instances, logger):
    kube.replace_node.side_effect = conflict()
    kube.read_node.side_effect = client.exceptions.ApiException(
        status=404, reason="Not Found")
    updater = _updater(kube, instances, logger, sleeps=[])
    with pytest.raises(NodeUpdateError, match="404"):
      updater.update_node_label("valid-worker")
    assert kube.read_node.call_count == 1

  def test_transport_error_fails(self, kube, instances, logger):
    kube.replace_node.side_effect = MaxRetryError(
        None, "/api/v1/nodes/valid-worker", "refused")
    updater = _updater(kube, instances, logger)
    with pytest.raises(NodeUpdateError, match="valid-worker") as exc_info:
      updater.update_node_label("valid-worker")
    assert isinstance(exc_info.value.__cause__, MaxRetryError)
    kube.read_node.assert_not_called()

  def test_reread_transport_error_is_terminal(self, kube, instances, logger):
    kube.replace_node.side_effect = conflict()
    kube.read_node.side_effect = MaxRetryError(
        None, "/api/v1/nodes/valid-worker", "refused")
    updater = _updater(kube, instances, logger, sleeps=[])
    with pytest.raises(NodeUpdateError) as exc_info:
      updater.update_node_label("valid-worker")
    assert isinstance(exc_info.value.__cause__, MaxRetryError)
    assert kube.read_node.call_count == 1
