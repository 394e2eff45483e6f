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
"""Bounded fixed-interval retry for short-lived init work.

The retried operation classifies its own failures. It returns a pair
``(error, stop)``: ``error`` is ``None`` on success, and ``stop`` is true when
the error must not be retried.

Example:
    def fetch():
      try:
        session.get(url)
      except requests.RequestException as e:
        return e, not is_connection_error(e)
      return None, True

    err = error_retry(logger, fetch)
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Optional, Tuple

import requests

from vpc_node_label_updater.constants import MAX_ATTEMPTS, RETRY_INTERVAL

if TYPE_CHECKING:
  from loguru import Logger

Operation = Callable[[], Tuple[Optional[BaseException], bool]]


def is_connection_error(err: Optional[BaseException]) -> bool:
  """True for DNS failures, refused connections and timeouts."""
  return isinstance(err, (requests.ConnectionError, requests.Timeout))


def error_retry(
    logger: Logger,
    operation: Operation,
    max_attempts: int = MAX_ATTEMPTS,
    interval: float = RETRY_INTERVAL,
    sleep: Callable[[float], None] = time.sleep,
) -> Optional[BaseException]:
  """Runs ``operation`` until it succeeds, stops, or runs out of attempts.

  Args:
    logger: Logger for attempt results.
    operation: Callable returning ``(error, stop)``.
    max_attempts: Total number of invocations allowed.
    interval: Seconds to sleep between attempts.
    sleep: Sleep function, replaceable in tests.

  Returns:
    None on success, otherwise the error from the last attempt.
  """
  err: Optional[BaseException] = None
  for attempt in range(1, max_attempts + 1):
    err, stop = operation()
    logger.debug(
        "Retry function result: attempt={}, error={}, stop={}",
        attempt, err, stop)
    if stop or err is None:
      return err
    if attempt >= max_attempts:
      break
    sleep(interval)
    logger.warning(
        "Retrying after error ({}/{}): {}", attempt, max_attempts, err)
  return err
