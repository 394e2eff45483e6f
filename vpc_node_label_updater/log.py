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
"""JSON logging on stdout."""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING

from loguru import logger

from vpc_node_label_updater.constants import WATCHER_NAME

if TYPE_CHECKING:
  from loguru import Logger


def setup_logger(debug: bool = False) -> Logger:
  """Replaces loguru's default sink and returns the bound run logger."""
  logger.remove()
  logger.add(sys.stdout, level="DEBUG" if debug else "INFO", serialize=True)
  return logger.bind(watcher_name=WATCHER_NAME)
