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
"""Exception hierarchy for the node label updater.

Every component raises one of these instead of exiting; only the entry
point turns them into a non-zero exit status.
"""

from __future__ import annotations


class LabelUpdaterError(Exception):
  """Base exception for all node label updater errors."""


class ConfigurationError(LabelUpdaterError):
  """Raised for missing or malformed configuration and credentials."""


class TokenExchangeError(LabelUpdaterError):
  """Raised when an API key cannot be exchanged for an access token."""


class InstanceLookupError(LabelUpdaterError):
  """Raised when the instance list cannot be fetched or decoded."""


class EmptyInstanceListError(InstanceLookupError):

  def __init__(self) -> None:
    super().__init__(
        "failed to get worker details as instance list is empty")


class WorkerNotFoundError(InstanceLookupError):

  def __init__(self, worker: str) -> None:
    self.worker = worker
    super().__init__(
        f"failed to get worker details, worker with name {worker} was not"
        " found in the instance list fetched from vpc provider")


class InvalidZoneError(InstanceLookupError):
  """Raised when a zone name has no region separator."""

  def __init__(self, zone: str | None) -> None:
    self.zone = zone
    super().__init__(f"cannot derive region from zone {zone!r}")


class NodeUpdateError(LabelUpdaterError):
  """Raised when the cluster node cannot be read or updated."""
