"""
Remote state client for an S3 state object guarded by DynamoDB lock records

The lock table holds two kinds of rows, both keyed by ``LockID``:

- lock records, keyed by the lock id (by default the state path
  ``bucket/key``), whose ``Info`` attribute is the holder's LockInfo JSON;
- digest records, keyed by ``bucket/key-md5``, whose ``Digest`` attribute
  is the md5 of the last state written through a client.

Locks never expire. A holder that dies keeps the lock until an operator
calls ``force_unlock`` with the lock info ID.
"""

import hashlib
import logging
import time
from contextlib import contextmanager
from typing import Iterator, List, Optional, Union

import boto3
from botocore.exceptions import ClientError

from .errors import (
    AlreadyLocked,
    NotHeld,
    StaleTokenOrConflict,
    StateDigestMismatch,
    StateNotFound,
)
from .lock_info import LockInfo, LockToken, StatePayload, StateVersion
from .retry import retry_with_backoff
from .settings import DEFAULT_WORKSPACE, BackendSettings

logger = logging.getLogger(__name__)

LOCK_HASH_KEY = "LockID"
SSE_ALGORITHM = "AES256"
DIGEST_SUFFIX = "-md5"

# Digest mismatches are retried for roughly 15s before giving up
DIGEST_RETRIES = 4
DIGEST_RETRY_DELAY = 1.0
MAX_LOCK_RETRY_DELAY = 16.0

_MISSING_OBJECT_CODES = ("NoSuchKey", "404", "NotFound")
_MISSING_VERSION_CODES = ("NoSuchVersion", "NoSuchKey", "404", "InvalidArgument")


def _error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "")


def _md5(data: bytes) -> str:
    return hashlib.md5(data).hexdigest()


class RemoteStateClient:
    """
    Lock, read and write a single remote state object

    Usage
    - ``acquire()`` creates the lock record and returns a ``LockToken``;
      it fails with ``AlreadyLocked`` while another record exists.
    - ``read_state()`` needs no lock and returns ``None`` before the first write.
    - ``write_state(blob, token)`` only succeeds while ``token`` is the live holder.
    - ``release(token)`` deletes the lock record; ``NotHeld`` otherwise.
    """

    def __init__(
        self,
        settings: BackendSettings,
        *,
        s3=None,
        dynamodb=None,
        workspace: str = DEFAULT_WORKSPACE,
        lock_id: Optional[str] = None,
        digest_retries: int = DIGEST_RETRIES,
        digest_retry_delay: float = DIGEST_RETRY_DELAY,
    ) -> None:
        self.settings = settings
        self.workspace = workspace
        self._s3 = s3 or boto3.client("s3", region_name=settings.region)
        self._dynamodb = dynamodb or boto3.client("dynamodb", region_name=settings.region)
        self._digest_retries = digest_retries
        self._digest_retry_delay = digest_retry_delay

        self.state_key = settings.state_key_for(workspace)
        self.state_path = settings.state_path(workspace)
        self.lock_id = lock_id or self.state_path

    # -------- Locking --------
    def acquire(
        self,
        lock_id: Optional[str] = None,
        operation: str = "",
        info: str = "",
        lock_timeout: float = 0.0,
    ) -> LockToken:
        """Create the lock record for ``lock_id``.

        With the default ``lock_timeout`` of 0 a held lock fails at once. A
        positive timeout keeps retrying with backoff until it elapses; the
        held lock is never taken over.
        """
        lock_id = lock_id or self.lock_id
        lock_info = LockInfo(path=self.state_path, operation=operation, info=info)
        deadline = time.monotonic() + lock_timeout
        delay = 1.0

        while True:
            try:
                self._put_lock(lock_id, lock_info)
            except AlreadyLocked:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise
                logger.info(f"State {lock_id} is locked, retrying in {min(delay, remaining):.1f}s")
                time.sleep(min(delay, remaining))
                delay = min(delay * 2, MAX_LOCK_RETRY_DELAY)
                continue
            logger.info(f"Acquired state lock {lock_id} (ID {lock_info.id})")
            return LockToken(lock_id=lock_id, id=lock_info.id)

    def release(self, token: LockToken) -> None:
        """Delete the lock record held by ``token``."""
        raw = self._get_lock_raw(token.lock_id)
        if raw is None:
            raise NotHeld(token.lock_id, token.id)

        holder = LockInfo.from_json(raw)
        if holder.id != token.id:
            raise NotHeld(token.lock_id, token.id, holder)

        try:
            self._dynamodb.delete_item(
                TableName=self.settings.dynamodb_table,
                Key={LOCK_HASH_KEY: {"S": token.lock_id}},
                ConditionExpression="#info = :info",
                ExpressionAttributeNames={"#info": "Info"},
                ExpressionAttributeValues={":info": {"S": raw}},
            )
        except ClientError as e:
            if _error_code(e) == "ConditionalCheckFailedException":
                raise NotHeld(token.lock_id, token.id, self.get_lock_info(token.lock_id)) from e
            raise
        logger.info(f"Released state lock {token.lock_id} (ID {token.id})")

    def force_unlock(self, lock_info_id: str, lock_id: Optional[str] = None) -> None:
        """Release a lock on behalf of a holder that can no longer do it."""
        lock_id = lock_id or self.lock_id
        logger.warning(f"Force-unlocking {lock_id} (ID {lock_info_id})")
        self.release(LockToken(lock_id=lock_id, id=lock_info_id))

    def get_lock_info(self, lock_id: Optional[str] = None) -> Optional[LockInfo]:
        raw = self._get_lock_raw(lock_id or self.lock_id)
        if raw is None:
            return None
        return LockInfo.from_json(raw)

    @contextmanager
    def locked(self, operation: str = "", info: str = "", lock_timeout: float = 0.0) -> Iterator[LockToken]:
        token = self.acquire(operation=operation, info=info, lock_timeout=lock_timeout)
        try:
            yield token
        finally:
            self.release(token)

    # -------- State --------
    def read_state(self) -> Optional[StatePayload]:
        """Fetch the current state; ``None`` if nothing has been written yet.

        Raises:
        - StateDigestMismatch if the object keeps disagreeing with the
          recorded digest after retries.
        - botocore.exceptions.ClientError for other S3 or DynamoDB issues.
        """
        return retry_with_backoff(
            self._read_verified,
            max_retries=self._digest_retries,
            initial_delay=self._digest_retry_delay,
            retry_on=(StateDigestMismatch,),
        )

    def write_state(self, blob: Union[bytes, str], token: LockToken) -> StatePayload:
        """Persist ``blob`` as the new state while ``token`` holds the lock."""
        if isinstance(blob, str):
            blob = blob.encode("utf-8")
        if not blob:
            raise ValueError("Refusing to write an empty state; use delete_state to remove it")
        self._check_holder(token, "write")

        params = {
            "Bucket": self.settings.bucket,
            "Key": self.state_key,
            "Body": blob,
            "ContentType": "application/json",
        }
        if self.settings.encrypt:
            params["ServerSideEncryption"] = SSE_ALGORITHM
        resp = self._s3.put_object(**params)

        digest = _md5(blob)
        self._put_digest(digest)
        logger.debug(f"Wrote {len(blob)} bytes to s3://{self.state_path} (md5 {digest})")
        return StatePayload(data=blob, md5=digest, version_id=resp.get("VersionId"))

    def delete_state(self, token: LockToken) -> None:
        """Remove the current state object and its digest while holding the lock."""
        self._check_holder(token, "delete")
        self._s3.delete_object(Bucket=self.settings.bucket, Key=self.state_key)
        self._dynamodb.delete_item(
            TableName=self.settings.dynamodb_table,
            Key={LOCK_HASH_KEY: {"S": self._digest_id}},
        )
        logger.info(f"Deleted state s3://{self.state_path}")

    def list_state_versions(self) -> List[StateVersion]:
        """Versions of the state object, newest first."""
        versions = []
        paginator = self._s3.get_paginator("list_object_versions")
        for page in paginator.paginate(Bucket=self.settings.bucket, Prefix=self.state_key):
            for item in page.get("Versions", []):
                if item["Key"] != self.state_key:
                    continue
                versions.append(StateVersion(
                    version_id=item["VersionId"],
                    is_latest=item.get("IsLatest", False),
                    last_modified=item["LastModified"],
                    size=item.get("Size", 0),
                ))
        versions.sort(key=lambda v: v.last_modified, reverse=True)
        return versions

    def read_state_version(self, version_id: str) -> StatePayload:
        try:
            resp = self._s3.get_object(
                Bucket=self.settings.bucket, Key=self.state_key, VersionId=version_id
            )
        except ClientError as e:
            if _error_code(e) in _MISSING_VERSION_CODES:
                raise StateNotFound(
                    f"No version {version_id} of s3://{self.state_path}"
                ) from e
            raise
        data = resp["Body"].read()
        return StatePayload(data=data, md5=_md5(data), version_id=resp.get("VersionId", version_id))

    def workspaces(self) -> List[str]:
        """``default`` plus every workspace holding a state object."""
        prefix = f"{self.settings.workspace_key_prefix}/"
        found = set()
        paginator = self._s3.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=self.settings.bucket, Prefix=prefix):
            for item in page.get("Contents", []):
                workspace, _, rest = item["Key"][len(prefix):].partition("/")
                if workspace and rest == self.settings.key:
                    found.add(workspace)
        found.discard(DEFAULT_WORKSPACE)
        return [DEFAULT_WORKSPACE] + sorted(found)

    # -------- Internals --------
    @property
    def _digest_id(self) -> str:
        return f"{self.state_path}{DIGEST_SUFFIX}"

    def _put_lock(self, lock_id: str, lock_info: LockInfo) -> None:
        try:
            self._dynamodb.put_item(
                TableName=self.settings.dynamodb_table,
                Item={
                    LOCK_HASH_KEY: {"S": lock_id},
                    "Info": {"S": lock_info.to_json()},
                },
                ConditionExpression="attribute_not_exists(LockID)",
            )
        except ClientError as e:
            if _error_code(e) == "ConditionalCheckFailedException":
                raise AlreadyLocked(lock_id, self.get_lock_info(lock_id)) from e
            raise

    def _get_lock_raw(self, lock_id: str) -> Optional[str]:
        resp = self._dynamodb.get_item(
            TableName=self.settings.dynamodb_table,
            Key={LOCK_HASH_KEY: {"S": lock_id}},
            ConsistentRead=True,
        )
        item = resp.get("Item")
        if not item or "Info" not in item:
            return None
        return item["Info"]["S"]

    def _check_holder(self, token: LockToken, action: str) -> None:
        if token.lock_id != self.lock_id:
            raise StaleTokenOrConflict(
                f"Cannot {action} state at {self.state_path}: token is for lock {token.lock_id}, "
                f"expected {self.lock_id}"
            )
        holder = self.get_lock_info(token.lock_id)
        if holder is None or holder.id != token.id:
            raise StaleTokenOrConflict(
                f"Cannot {action} state at {self.state_path}: lock ID {token.id} is no longer "
                "the current holder",
                holder,
            )

    def _get_object(self) -> Optional[StatePayload]:
        try:
            resp = self._s3.get_object(Bucket=self.settings.bucket, Key=self.state_key)
        except ClientError as e:
            if _error_code(e) in _MISSING_OBJECT_CODES:
                return None
            raise
        data = resp["Body"].read()
        return StatePayload(data=data, md5=_md5(data), version_id=resp.get("VersionId"))

    def _get_digest(self) -> str:
        resp = self._dynamodb.get_item(
            TableName=self.settings.dynamodb_table,
            Key={LOCK_HASH_KEY: {"S": self._digest_id}},
            ConsistentRead=True,
        )
        item = resp.get("Item") or {}
        return item.get("Digest", {}).get("S", "")

    def _put_digest(self, digest: str) -> None:
        self._dynamodb.put_item(
            TableName=self.settings.dynamodb_table,
            Item={
                LOCK_HASH_KEY: {"S": self._digest_id},
                "Digest": {"S": digest},
            },
        )

    def _read_verified(self) -> Optional[StatePayload]:
        payload = self._get_object()
        expected = self._get_digest()
        actual = payload.md5 if payload is not None else ""
        if expected and expected != actual:
            raise StateDigestMismatch(self.state_path, expected, actual)
        # An empty object holds no state
        if payload is None or not payload.data:
            return None
        return payload
