"""
Unit tests for the operator commands
"""

import io
import json
import os
import sys
import unittest
from unittest.mock import patch

from botocore.exceptions import ClientError, NoCredentialsError

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from state_lock.cli import main
from state_lock.settings import ENV_BUCKET, ENV_KEY, ENV_LOCK_TABLE, BackendSettings

from test_state_lock import RemoteStateTestCase


def _run(argv, client=None):
    stdout = io.TextIOWrapper(io.BytesIO(), encoding="utf-8")
    stderr = io.StringIO()
    with patch("sys.stdout", stdout), patch("sys.stderr", stderr):
        code = main(argv, client=client)
        stdout.flush()
    return code, stdout.buffer.getvalue().decode("utf-8"), stderr.getvalue()


class TestCommands(RemoteStateTestCase):

    def test_show_lock_when_unlocked(self):
        code, out, _ = _run(["show-lock"], self.make_client())
        self.assertEqual(code, 0)
        self.assertIn("No lock held", out)

    def test_show_lock_prints_holder(self):
        client = self.make_client()
        token = client.acquire(operation="OperationTypeApply")

        code, out, _ = _run(["show-lock"], client)
        self.assertEqual(code, 0)
        self.assertEqual(json.loads(out)["ID"], token.id)

    def test_force_unlock_requires_flag(self):
        client = self.make_client()
        token = client.acquire()

        code, _, err = _run(["force-unlock", token.id], client)
        self.assertEqual(code, 1)
        self.assertIn("--force", err)
        self.assertIsNotNone(client.get_lock_info())

    def test_force_unlock(self):
        client = self.make_client()
        token = client.acquire()

        code, out, _ = _run(["force-unlock", token.id, "--force"], client)
        self.assertEqual(code, 0)
        self.assertIn("successfully unlocked", out)
        self.assertIsNone(client.get_lock_info())

    def test_force_unlock_wrong_id_reports_holder(self):
        client = self.make_client()
        token = client.acquire()

        code, _, err = _run(["force-unlock", "wrong-id", "--force"], client)
        self.assertEqual(code, 1)
        self.assertIn(token.id, err)

    def test_access_denied_is_reported(self):
        client = self.make_client()
        denied = ClientError(
            {"Error": {"Code": "AccessDeniedException", "Message": "not authorized to GetItem"}},
            "GetItem",
        )

        with patch.object(client._dynamodb, "get_item", side_effect=denied):
            code, _, err = _run(["show-lock"], client)
        self.assertEqual(code, 1)
        self.assertIn("AccessDeniedException", err)

    def test_missing_credentials_are_reported(self):
        client = self.make_client()

        with patch.object(client._s3, "get_object", side_effect=NoCredentialsError()):
            code, _, err = _run(["pull"], client)
        self.assertEqual(code, 1)
        self.assertIn("Unable to locate credentials", err)

    def test_pull(self):
        client = self.make_client()
        with client.locked() as token:
            client.write_state(b'{"serial": 3}', token)

        code, out, _ = _run(["pull"], client)
        self.assertEqual(code, 0)
        self.assertEqual(out, '{"serial": 3}')

    def test_pull_without_state(self):
        code, _, err = _run(["pull"], self.make_client())
        self.assertEqual(code, 1)
        self.assertIn("No state stored", err)

    def test_versions_and_workspaces(self):
        client = self.make_client()
        with client.locked() as token:
            written = client.write_state(b"{}", token)

        code, out, _ = _run(["versions"], client)
        self.assertEqual(code, 0)
        self.assertIn(written.version_id, out)

        code, out, _ = _run(["workspaces"], client)
        self.assertEqual(code, 0)
        self.assertIn("* default", out)


class TestSettings(unittest.TestCase):

    def test_missing_environment_is_reported(self):
        with patch.dict(os.environ, {}, clear=True):
            code, _, err = _run(["show-lock"])
        self.assertEqual(code, 1)
        for name in (ENV_BUCKET, ENV_KEY, ENV_LOCK_TABLE):
            self.assertIn(name, err)

    def test_from_env(self):
        env = {
            ENV_BUCKET: "b",
            ENV_KEY: "k",
            ENV_LOCK_TABLE: "t",
            "TFSTATE_REGION": "eu-west-1",
            "TFSTATE_ENCRYPT": "false",
        }
        with patch.dict(os.environ, env, clear=True):
            settings = BackendSettings.from_env()
        self.assertEqual(settings.region, "eu-west-1")
        self.assertFalse(settings.encrypt)
        self.assertEqual(settings.state_path(), "b/k")
        self.assertEqual(settings.state_path("dev"), "b/env:/dev/k")

    def test_from_backend_config(self):
        settings = BackendSettings.from_backend_config({
            "backend_type": "s3",
            "bucket": "b",
            "key": "k",
            "region": "us-east-1",
            "dynamodb_table": "t",
            "encrypt": "true",
        })
        self.assertTrue(settings.encrypt)
        self.assertEqual(settings.dynamodb_table, "t")

        with self.assertRaises(ValueError):
            BackendSettings.from_backend_config({"bucket": "b"})


if __name__ == "__main__":
    unittest.main()
