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

from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import pytest
import requests
from kubernetes import client
from loguru import logger as _logger

from vpc_node_label_updater.types import Instance


@pytest.fixture
def logger():
  return _logger.bind(watcher_name="test")


@pytest.fixture
def sleeps() -> List[float]:
  return []


@pytest.fixture
def no_sleep(sleeps):
  return sleeps.append


def make_response(
    status_code: int = 200, payload: Optional[Any] = None) -> MagicMock:
  response = MagicMock(spec=requests.Response)
  response.status_code = status_code
  response.ok = 200 <= status_code < 300
  if isinstance(payload, Exception):
    response.json.side_effect = payload
  else:
    response.json.return_value = payload
  return response


def make_instance(
    instance_id: str = "valid-instance-id",
    name: str = "valid-worker",
    zone: str = "us-south-1",
    ip: str = "10.240.0.4") -> Dict[str, Any]:
  return {
      "id": instance_id,
      "name": name,
      "status": "running",
      "zone": {"name": zone, "href": f"https://iaas/zones/{zone}"},
      "primary_network_interface": {
          "id": f"{instance_id}-nic",
          "name": "eth0",
          "primary_ipv4_address": ip,
      },
  }


def make_node(name: str = "fake-node",
              labels: Optional[Dict[str, str]] = None) -> client.V1Node:
  return client.V1Node(metadata=client.V1ObjectMeta(
      name=name, labels={"test": "test"} if labels is None else labels))


@pytest.fixture
def instances() -> List[Instance]:
  return [
      Instance.from_dict(make_instance()),
      Instance.from_dict(make_instance(
          instance_id="other-id", name="other-worker", zone="eu-de-2",
          ip="10.0.0.5")),
  ]
