"""
Operator commands for the remote state backend

Backend location comes from TFSTATE_BUCKET, TFSTATE_KEY, TFSTATE_LOCK_TABLE,
TFSTATE_REGION and TFSTATE_ENCRYPT.
"""

import argparse
import json
import logging
import sys
from typing import List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from .client import RemoteStateClient
from .errors import StateBackendError
from .settings import DEFAULT_WORKSPACE, BackendSettings

logger = logging.getLogger(__name__)


def _show_lock(client: RemoteStateClient, args) -> int:
    lock_info = client.get_lock_info()
    if lock_info is None:
        print(f"No lock held on {client.lock_id}")
        return 0
    print(json.dumps(lock_info.to_dict(), indent=2))
    return 0


def _force_unlock(client: RemoteStateClient, args) -> int:
    if not args.force:
        print(
            "Refusing to force-unlock without --force. Only remove a lock whose holder "
            "is known to be gone; a live holder may corrupt the state.",
            file=sys.stderr,
        )
        return 1
    client.force_unlock(args.lock_info_id)
    print(f"State {client.lock_id} has been successfully unlocked")
    return 0


def _pull(client: RemoteStateClient, args) -> int:
    if args.version_id:
        payload = client.read_state_version(args.version_id)
    else:
        payload = client.read_state()
    if payload is None:
        print(f"No state stored at s3://{client.state_path}", file=sys.stderr)
        return 1
    sys.stdout.buffer.write(payload.data)
    sys.stdout.flush()
    return 0


def _versions(client: RemoteStateClient, args) -> int:
    for version in client.list_state_versions():
        marker = "*" if version.is_latest else " "
        print(f"{marker} {version.version_id}  {version.last_modified.isoformat()}  {version.size}")
    return 0


def _workspaces(client: RemoteStateClient, args) -> int:
    for workspace in client.workspaces():
        marker = "*" if workspace == client.workspace else " "
        print(f"{marker} {workspace}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="state_lock", description=__doc__.strip().splitlines()[0])
    parser.add_argument("-w", "--workspace", default=DEFAULT_WORKSPACE)
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("show-lock", help="print the current lock holder").set_defaults(func=_show_lock)

    unlock = sub.add_parser("force-unlock", help="remove a lock left by a crashed holder")
    unlock.add_argument("lock_info_id")
    unlock.add_argument("--force", action="store_true")
    unlock.set_defaults(func=_force_unlock)

    pull = sub.add_parser("pull", help="write the stored state to stdout")
    pull.add_argument("--version-id")
    pull.set_defaults(func=_pull)

    sub.add_parser("versions", help="list retained state versions").set_defaults(func=_versions)
    sub.add_parser("workspaces", help="list workspaces with stored state").set_defaults(func=_workspaces)
    return parser


def main(argv: Optional[List[str]] = None, client: Optional[RemoteStateClient] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        if client is None:
            client = RemoteStateClient(BackendSettings.from_env(), workspace=args.workspace)
        return args.func(client, args)
    except (StateBackendError, RuntimeError, BotoCoreError, ClientError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
