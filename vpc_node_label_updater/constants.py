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
"""Label keys and fixed request parameters."""

WATCHER_NAME = "vpc-node-label-updater"

# worker-id is kept alongside vpc-instance-id for consumers that still read it.
WORKER_ID_LABEL_KEY = "ibm-cloud.kubernetes.io/worker-id"
INSTANCE_ID_LABEL_KEY = "ibm-cloud.kubernetes.io/vpc-instance-id"
FAILURE_REGION_LABEL_KEY = "failure-domain.beta.kubernetes.io/region"
FAILURE_ZONE_LABEL_KEY = "failure-domain.beta.kubernetes.io/zone"
TOPOLOGY_REGION_LABEL_KEY = "topology.kubernetes.io/region"
TOPOLOGY_ZONE_LABEL_KEY = "topology.kubernetes.io/zone"
VPC_BLOCK_LABEL_KEY = "vpc-block-csi-driver-labels"

CONFIG_FILE_NAME = "slclient.toml"
DEFAULT_CONFIG_DIR = "/etc/storage_ibmc"

VPC_GENERATION = "2"
VPC_RIAAS_VERSION = "2020-01-01"
TOKEN_GRANT_TYPE = "urn:ibm:params:oauth:grant-type:apikey"

MAX_ATTEMPTS = 30
RETRY_INTERVAL = 10.0
REQUEST_TIMEOUT = 30.0

MAX_CONFLICT_ATTEMPTS = 5
CONFLICT_RETRY_INTERVAL = 1.0
