"""
End-to-end smoke test for the mantle-queue CLI
----------------------------------------------
Validates, through real processes sharing one database file:
1. Pushing jobs and running a batch
2. Failure capture, retry and cleanup
3. Persistence and configuration

Run:
    python test.py
"""

import json
import os
import subprocess
import sys
import tempfile


def run(cmd, env, check=True) -> str:
    """Run the CLI and return stdout."""
    args = [sys.executable, "-m", "mantle_queue", *cmd]
    print(f"\n$ mantle-queue {' '.join(cmd)}")
    res = subprocess.run(args, capture_output=True, text=True, env=env)
    if check and res.returncode != 0:
        print(res.stdout, res.stderr)
        raise RuntimeError(f"Command failed: {cmd}")
    print(res.stdout.strip())
    return res.stdout.strip()


def make_env(directory):
    env = dict(os.environ)
    env["MANTLE_QUEUE_DB"] = os.path.join(directory, "queue.db")
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [os.path.dirname(os.path.abspath(__file__)), env.get("PYTHONPATH")]))
    return env


def test_basic_flow(tmp_path):
    env = make_env(str(tmp_path))
    assert run(["config", "get"], env)
    assert os.path.exists(env["MANTLE_QUEUE_DB"]), "Database not created!"

    # One job that works, one that fails.
    run(["push", "time:sleep", "0"], env)
    run(["push", "os:remove", "/nonexistent/mantle-queue-smoke"], env)
    run(["config", "set", "batch_size", "10"], env)

    stats = json.loads(run(["status"], env))
    assert stats["total"]["pending"] == 2

    out = run(["run", "default"], env)
    assert "Run complete: default" in out

    stats = json.loads(run(["status"], env))
    assert stats["total"]["completed"] == 1
    assert stats["total"]["failed"] == 1

    failed = run(["failed"], env)
    assert "FileNotFoundError" in failed
    job_id = failed.split("|")[0].strip()

    run(["retry", job_id], env)
    assert json.loads(run(["status"], env))["total"]["pending"] == 1

    # Only the completed job is finished; the retried one is pending again.
    assert "Deleted 1 job(s)." in run(["cleanup", "--older-than", "0"], env)

    # The retried job fails again and is left for the operator.
    assert run(["tick"], env) == "idle"
    assert job_id in run(["failed"], env)

    print("\n All tests executed successfully.")


if __name__ == "__main__":
    from pathlib import Path

    with tempfile.TemporaryDirectory() as d:
        test_basic_flow(Path(d))
