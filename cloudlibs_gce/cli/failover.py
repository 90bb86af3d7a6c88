# Copyright 2026 Firefly Software Solutions Inc
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

"""
Failover command.

Run by the device when it becomes active for one or more traffic groups.
Moves the floating addresses of those groups (alias IP ranges and
forwarding rules) to this VM.

Usage:
    cloudlibs-gce-failover
    cloudlibs-gce-failover --log-level debug --log-file /tmp/failover.log
    cloudlibs-gce-failover --config-file /config/cloud/.deployment --user admin --password secret
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from typing import List, Optional

from cloudlibs_gce.config import (
    DEFAULT_DEPLOYMENT_FILE,
    DEFAULT_FAILOVER_LOG_FILE,
    DEFAULT_MGMT_PORT,
    DeploymentConfig,
)
from cloudlibs_gce.exceptions import CloudProviderError
from cloudlibs_gce.failover.appliance import BigIpClient
from cloudlibs_gce.failover.remediator import FailoverReport, perform_failover
from cloudlibs_gce.gcp.compute import ComputeClient
from cloudlibs_gce.gcp.session import GcpSession
from cloudlibs_gce.utils.logger import setup_logger

LOGGER_NAME = "cloudlibs_gce.failover"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cloudlibs-gce-failover",
        description="Move floating addresses to this BIG-IP on failover",
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("GCE_FAILOVER_LOG_LEVEL", "info"),
        choices=["debug", "info", "warning", "error", "critical"],
        help="Log level (default: info)",
    )
    parser.add_argument(
        "--log-file",
        default=DEFAULT_FAILOVER_LOG_FILE,
        help=f"Log file location (default: {DEFAULT_FAILOVER_LOG_FILE})",
    )
    parser.add_argument(
        "--config-file",
        default=DEFAULT_DEPLOYMENT_FILE,
        help=f"Deployment file with the tagKey and tagValue labels (default: {DEFAULT_DEPLOYMENT_FILE})",
    )
    parser.add_argument(
        "--user",
        default=os.environ.get("BIGIP_USER", "admin"),
        help="BIG-IP user (default: admin)",
    )
    parser.add_argument(
        "--password",
        default=os.environ.get("BIGIP_PASSWORD", "admin"),
        help="BIG-IP password",
    )
    parser.add_argument(
        "--mgmt-port",
        type=int,
        default=DEFAULT_MGMT_PORT,
        help=f"BIG-IP management port (default: {DEFAULT_MGMT_PORT})",
    )
    return parser


def configure_logging(level: str, log_file: Optional[str]) -> logging.Logger:
    """Log to stdout and, when it can be opened, to the log file."""
    try:
        return setup_logger(LOGGER_NAME, level=level, log_file=log_file)
    except OSError as e:
        logger = setup_logger(LOGGER_NAME, level=level)
        logger.warning(f"Unable to open log file {log_file}: {e}")
        return logger


async def run_failover(args: argparse.Namespace, logger: logging.Logger) -> FailoverReport:
    deployment = DeploymentConfig.load(args.config_file)

    async with GcpSession(logger=logger) as session:
        compute = ComputeClient(session, logger=logger)
        async with BigIpClient(
            "localhost", args.user, args.password, port=args.mgmt_port, logger=logger
        ) as bigip:
            return await perform_failover(
                session.metadata, bigip, compute, compute, deployment.tag, logger=logger
            )


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the failover command."""
    args = build_parser().parse_args(argv)
    logger = configure_logging(args.log_level, args.log_file)

    try:
        report = asyncio.run(run_failover(args, logger))
    except CloudProviderError as e:
        logger.error(f"Failover Failed: {e}")
        return 1

    logger.debug(f"Failover report: {report.to_dict()}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
