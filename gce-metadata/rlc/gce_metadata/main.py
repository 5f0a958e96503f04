"""
RLC GCE Metadata - command line entry point

Prints what the metadata service reports about the current instance, one
``name = value`` line per field.
"""

import argparse
import sys
from typing import Callable, Dict, List, Optional

from .client import MetadataClient
from .detect import bios_reports_gce
from .errors import ConfigurationError, MetadataError
from .log_utils import logger, setup_logging

FIELDS = [
    "on_gce",
    "bios_reports_gce",
    "project_id",
    "numeric_project_id",
    "internal_ip",
    "external_ip",
    "email",
    "hostname",
    "instance_tags",
    "instance_id",
    "instance_name",
    "zone",
    "instance_attributes",
    "project_attributes",
    "instance_attribute_value",
    "project_attribute_value",
    "scopes",
]


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="rlc-gce-metadata",
        description="Dump Google Compute Engine instance metadata",
    )
    parser.add_argument(
        "--field",
        action="append",
        choices=FIELDS,
        help="Field to print; may be repeated. Defaults to all fields.",
    )
    parser.add_argument(
        "--attr",
        default="attr",
        help="Attribute name for instance_attribute_value and project_attribute_value",
    )
    parser.add_argument(
        "--service-account",
        default=None,
        help="Service account for email and scopes (default: the instance's main account)",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def _field_getters(client: MetadataClient, args: argparse.Namespace) -> Dict[str, Callable[[], object]]:
    return {
        "on_gce": client.on_gce,
        "bios_reports_gce": bios_reports_gce,
        "project_id": client.project_id,
        "numeric_project_id": client.numeric_project_id,
        "internal_ip": client.internal_ip,
        "external_ip": client.external_ip,
        "email": lambda: client.email(args.service_account),
        "hostname": client.hostname,
        "instance_tags": client.instance_tags,
        "instance_id": client.instance_id,
        "instance_name": client.instance_name,
        "zone": client.zone,
        "instance_attributes": client.instance_attributes,
        "project_attributes": client.project_attributes,
        "instance_attribute_value": lambda: client.instance_attribute_value(args.attr),
        "project_attribute_value": lambda: client.project_attribute_value(args.attr),
        "scopes": lambda: client.scopes(args.service_account),
    }


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging(args.debug)

    try:
        client = MetadataClient()
    except ConfigurationError as e:
        logger.error(f"Invalid metadata configuration: {e}")
        return 1

    status = 0
    with client:
        getters = _field_getters(client, args)
        for name in args.field or FIELDS:
            try:
                value = getters[name]()
            except MetadataError as e:
                print(f"{name} = error: {e}")
                status = 1
                continue
            print(f"{name} = {value!r}")

    return status


if __name__ == "__main__":
    sys.exit(main())
