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

import pytest
import requests

from vpc_node_label_updater.constants import MAX_ATTEMPTS, RETRY_INTERVAL
from vpc_node_label_updater.retry import error_retry, is_connection_error


class _Flaky:

  def __init__(self, outcomes):
    self.outcomes = list(outcomes)
    self.calls = 0

  def __call__(self):
    outcome = self.outcomes[min(self.calls, len(self.outcomes) - 1)]
    self.calls += 1
    return outcome


class TestErrorRetry:

  def test_success_after_retryable_failures(self, logger, sleeps, no_sleep):
    err = requests.ConnectionError("refused")
    op = _Flaky([(err, False), (err, False), (None, True)])
    assert error_retry(logger, op, sleep=no_sleep) is None
    assert op.calls == 3
    assert sleeps == [RETRY_INTERVAL, RETRY_INTERVAL]

  def test_success_without_stop_flag_returns(self, logger, no_sleep):
    op = _Flaky([(None, False)])
    assert error_retry(logger, op, sleep=no_sleep) is None
    assert op.calls == 1

  def test_terminal_error_is_not_retried(self, logger, sleeps, no_sleep):
    err = ValueError("malformed")
    op = _Flaky([(err, True)])
    assert error_retry(logger, op, sleep=no_sleep) is err
    assert op.calls == 1
    assert sleeps == []

  def test_exhausts_attempt_budget(self, logger, sleeps, no_sleep):
    errors = [requests.Timeout(f"attempt {i}") for i in range(MAX_ATTEMPTS)]
    op = _Flaky([(e, False) for e in errors])
    assert error_retry(logger, op, sleep=no_sleep) is errors[-1]
    assert op.calls == MAX_ATTEMPTS == 30
    assert len(sleeps) == MAX_ATTEMPTS - 1

  def test_custom_budget(self, logger, sleeps, no_sleep):
    op = _Flaky([(requests.ConnectionError(), False)])
    error_retry(logger, op, max_attempts=3, interval=0.5, sleep=no_sleep)
    assert op.calls == 3
    assert sleeps == [0.5, 0.5]


class TestIsConnectionError:

  @pytest.mark.parametrize("err", [
      requests.ConnectionError("dns"),
      requests.Timeout("slow"),
      requests.exceptions.ConnectTimeout("connect"),
  ])
  def test_transport_failures(self, err):
    assert is_connection_error(err)

  @pytest.mark.parametrize("err", [
      requests.exceptions.MissingSchema("no scheme"),
      requests.exceptions.InvalidSchema("ftp"),
      requests.HTTPError("500"),
      ValueError("bad json"),
      None,
  ])
  def test_everything_else(self, err):
    assert not is_connection_error(err)
