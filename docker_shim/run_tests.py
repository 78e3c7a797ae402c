#!/usr/bin/env python3
"""
Test Runner Script
Runs the unit suite (mocked, no Docker needed) and the integration suite
(real daemon) with pytest.

    python -m docker_shim.run_tests unit
    python -m docker_shim.run_tests integration
    python -m docker_shim.run_tests --check-docker
"""

import sys
import subprocess
import argparse
from pathlib import Path
from typing import List, Optional

import docker

from docker_shim.config import DaemonConfig

HERE = Path(__file__).resolve().parent
INTEGRATION_TESTS = [str(HERE / "test_daemon_controller.py")]


def unit_test_files() -> List[str]:
    return sorted(str(path) for path in HERE.glob("test_*_unit.py"))


def check_docker_available(socket: Optional[str] = None) -> bool:
    """Check if a Docker daemon answers on socket (DOCKER_HOST or the default)"""
    try:
        client = docker.DockerClient(base_url=socket or DaemonConfig.from_env().socket)
        client.ping()
        return True
    except Exception as e:
        print(f"Docker not available: {e}")
        return False


def run_pytest(files: List[str], *options: str) -> int:
    cmd = [sys.executable, "-m", "pytest", *files, *options]
    return subprocess.run(cmd).returncode


def run_integration(marker: str) -> int:
    if not check_docker_available():
        print(f"Skipping '{marker}' tests: Docker not available")
        return 0
    print(f"Running '{marker}' tests against the real daemon...")
    return run_pytest(INTEGRATION_TESTS, "-v", "--tb=short", "-m", marker)


def run_all_tests() -> int:
    unit_result = run_pytest(unit_test_files(), "-v", "--tb=short")
    if unit_result != 0:
        print("Unit tests failed")
        return unit_result

    integration_result = run_integration("integration and not slow")
    if integration_result != 0:
        print("Integration tests failed")
        return integration_result

    print("All tests passed!")
    return 0


def run_coverage() -> int:
    try:
        import pytest_cov  # noqa: F401
    except ImportError:
        print("Please install pytest-cov: pip install pytest-cov")
        return 1

    files = unit_test_files()
    options = ["--cov=docker_shim", "--cov-report=html", "--cov-report=term-missing", "-v"]
    if check_docker_available():
        files += INTEGRATION_TESTS
        options += ["-m", "not slow"]
    return run_pytest(files, *options)


def run_keyword(keyword: str) -> int:
    print(f"Running tests matching: {keyword}")
    result = run_pytest(unit_test_files(), "-k", keyword, "-v")
    if check_docker_available():
        return max(result, run_pytest(INTEGRATION_TESTS, "-k", keyword, "-v"))
    return result


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="docker-shim test runner")
    parser.add_argument(
        "test_type",
        choices=["unit", "integration", "slow", "all", "coverage"],
        nargs="?",
        default="unit",
        help="Test type (default: unit)"
    )
    parser.add_argument("-k", "--keyword", help="Run tests matching a keyword")
    parser.add_argument("--check-docker", action="store_true", help="Check whether Docker is available")

    args = parser.parse_args(argv)

    if args.check_docker:
        available = check_docker_available()
        print(f"Docker availability: {'Yes' if available else 'No'}")
        return 0 if available else 1

    if args.keyword:
        return run_keyword(args.keyword)

    if args.test_type == "unit":
        return run_pytest(unit_test_files(), "-v", "--tb=short")
    elif args.test_type == "integration":
        return run_integration("integration and not slow")
    elif args.test_type == "slow":
        return run_integration("slow")
    elif args.test_type == "all":
        return run_all_tests()
    return run_coverage()


if __name__ == "__main__":
    sys.exit(main())
