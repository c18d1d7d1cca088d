"""Deploy the pipeline trigger flows defined in prefect.yaml.

Usage:
    python manage.py deploy_flows                         # deploy all trigger flows
    python manage.py deploy_flows --dry-run               # validate only
    python manage.py deploy_flows --list                  # list deployments and schedules
    python manage.py deploy_flows --name region-discovery # deploy one flow

Requires a Prefect 3 server or Prefect Cloud (prefect server start).
"""

from __future__ import annotations

import ast
import subprocess
import sys
from pathlib import Path

import yaml
from django.core.management.base import BaseCommand, CommandError


_PROJECT_ROOT = Path(__file__).resolve().parents[3]
_PREFECT_YAML = _PROJECT_ROOT / "prefect.yaml"


def load_deployments(path: Path = _PREFECT_YAML) -> list[dict]:
    if not path.is_file():
        raise CommandError(f"prefect.yaml not found at {path}")
    try:
        with open(path) as fh:
            config = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        raise CommandError(f"Invalid YAML in {path}: {exc}")
    if not config or not config.get("deployments"):
        raise CommandError(f"{path} has no 'deployments'")
    return config["deployments"]


def validate_entrypoint(dep: dict, root: Path = _PROJECT_ROOT) -> str | None:
    """Return an error message, or None when the entrypoint names a function in an existing file."""
    name = dep.get("name", "<unnamed>")
    entrypoint = dep.get("entrypoint", "")
    if ":" not in entrypoint:
        return f"[{name}] Invalid entrypoint '{entrypoint}' (expected 'path/to/file.py:function_name')"

    file_path, func_name = entrypoint.rsplit(":", 1)
    flow_file = root / file_path
    if not flow_file.is_file():
        return f"[{name}] Flow file not found: {flow_file}"
    try:
        tree = ast.parse(flow_file.read_text(), filename=str(flow_file))
    except SyntaxError as exc:
        return f"[{name}] Syntax error in {flow_file}: {exc}"

    functions = {
        node.name for node in ast.walk(tree)
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef))
    }
    if func_name not in functions:
        return f"[{name}] Function '{func_name}' not found in {flow_file}"
    return None


class Command(BaseCommand):
    help = "Deploy the pipeline trigger flows defined in prefect.yaml"

    def add_arguments(self, parser):
        parser.add_argument("--dry-run", action="store_true", help="Validate prefect.yaml without deploying")
        parser.add_argument("--list", action="store_true", dest="list_deployments", help="List deployments")
        parser.add_argument("--name", type=str, default="", help="Deploy only the named deployment")

    def handle(self, *args, **options):
        deployments = load_deployments()
        self.stdout.write(self.style.SUCCESS(f"Found {len(deployments)} deployment(s) in {_PREFECT_YAML}"))

        errors = [err for err in (validate_entrypoint(dep) for dep in deployments) if err]
        if errors:
            for err in errors:
                self.stderr.write(self.style.ERROR(f"  {err}"))
            raise CommandError("Fix the entrypoint errors above before deploying.")

        if options["name"] and options["name"] not in {d.get("name") for d in deployments}:
            raise CommandError(f"No deployment named {options['name']!r}")

        if options["list_deployments"] or options["dry_run"]:
            for dep in deployments:
                schedule = dep.get("schedule") or {}
                self.stdout.write(
                    f"  {self.style.SQL_KEYWORD(dep.get('name', '<unnamed>'))}  "
                    f"{schedule.get('cron', 'no schedule')} ({schedule.get('timezone', 'UTC')})  "
                    f"{dep.get('entrypoint', '')}"
                )
            if options["dry_run"]:
                self.stdout.write(self.style.SUCCESS("DRY RUN -- nothing deployed"))
            return

        try:
            version = subprocess.run(
                [sys.executable, "-m", "prefect", "version"],
                capture_output=True, text=True, timeout=15,
            )
            if version.returncode != 0:
                raise FileNotFoundError
        except (FileNotFoundError, subprocess.TimeoutExpired):
            raise CommandError("Prefect CLI not found. Install it with: pip install prefect")

        cmd = [sys.executable, "-m", "prefect", "deploy"]
        cmd.extend(["-n", options["name"]] if options["name"] else ["--all"])
        self.stdout.write(f"Running: {' '.join(cmd)}")

        result = subprocess.run(cmd, cwd=str(_PROJECT_ROOT), timeout=120)
        if result.returncode != 0:
            raise CommandError(
                f"Prefect deploy exited with code {result.returncode}. "
                f"Is the Prefect server running (prefect server start)?"
            )
        self.stdout.write(self.style.SUCCESS("Flows deployed. Use 'prefect deployment ls' to verify."))
