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
"""Exchanges an IAM API key for a short-lived access token."""

from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

import requests

from vpc_node_label_updater.constants import REQUEST_TIMEOUT, TOKEN_GRANT_TYPE
from vpc_node_label_updater.errors import TokenExchangeError
from vpc_node_label_updater.retry import error_retry, is_connection_error
from vpc_node_label_updater.types import AccessTokenResponse

if TYPE_CHECKING:
  from loguru import Logger


@dataclass(slots=True)
class StorageSecretConfig:
  """Credentials and endpoint for one run.

  ``iam_access_token`` is empty until an exchange (or an external secret
  provider) fills it in.
  """

  riaas_endpoint_url: str
  api_key: str = ""
  iam_token_exchange_url: str = ""
  basic_auth_string: str = ""
  iam_access_token: str = ""
  token: Optional[AccessTokenResponse] = None

  def refresh_access_token(
      self,
      logger: Logger,
      session: Optional[requests.Session] = None,
      **retry_kwargs,
  ) -> str:
    self.token = get_access_token(self, logger, session, **retry_kwargs)
    self.iam_access_token = self.token.access_token
    return self.iam_access_token


def get_access_token(
    secret_config: StorageSecretConfig,
    logger: Logger,
    session: Optional[requests.Session] = None,
    **retry_kwargs,
) -> AccessTokenResponse:
  """POSTs the API key to the token exchange endpoint.

  Connection failures are retried; a malformed URL, a non-200 status or an
  undecodable body fails straight away. A session created here is closed
  before returning.

  Raises:
    TokenExchangeError: The exchange did not produce a token.
  """
  if session is not None:
    return _exchange(secret_config, logger, session, **retry_kwargs)
  with requests.Session() as own_session:
    return _exchange(secret_config, logger, own_session, **retry_kwargs)


def _exchange(
    secret_config: StorageSecretConfig,
    logger: Logger,
    session: requests.Session,
    **retry_kwargs,
) -> AccessTokenResponse:
  basic = base64.b64encode(
      secret_config.basic_auth_string.encode("utf-8")).decode("ascii")
  headers = {
      "Authorization": f"Basic {basic}",
      "Accept": "application/json",
  }
  form = {"grant_type": TOKEN_GRANT_TYPE, "apikey": secret_config.api_key}

  response: Optional[requests.Response] = None

  def _post():
    nonlocal response
    try:
      response = session.post(
          secret_config.iam_token_exchange_url,
          data=form,
          headers=headers,
          timeout=REQUEST_TIMEOUT,
      )
    except requests.RequestException as e:
      return e, not is_connection_error(e)
    return None, True

  err = error_retry(logger, _post, **retry_kwargs)
  if err is not None:
    raise TokenExchangeError(
        f"POST {secret_config.iam_token_exchange_url!r}: {err}") from err

  if response is None or response.status_code != 200:
    status = response.status_code if response is not None else None
    logger.error("IAM token exchange request failed: status={}", status)
    raise TokenExchangeError(f"status code: {status}, check API key provided")

  try:
    token = AccessTokenResponse.from_dict(response.json())
  except ValueError as e:
    raise TokenExchangeError(
        "failed to unmarshal json response for access token") from e

  logger.info("Successfully got access token in exchange of apikey")
  return token
