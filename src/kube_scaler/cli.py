"""Command-line interface for the scaler.

Build pipelines run ``kube-scaler scale`` as a step; the exit status is the
step's success or failure signal.
"""

import argparse
import logging
import signal
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from kube_scaler.core.config import LOG_LEVELS

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2


def setup_logging(level: str = "INFO") -> None:
    """Configure logging."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """Collect the step fields given on the command line."""
    overrides: Dict[str, Any] = {
        key: value
        for key, value in (
            ("api_url", args.api_url),
            ("deployment", args.deployment),
            ("namespace", args.namespace),
            ("replica_count", args.replicas),
            ("auth_token", args.token),
        )
        if value is not None
    }
    
    cluster: Dict[str, Any] = {}
    if args.kind is not None:
        cluster["resource_kind"] = args.kind
    if args.runner is not None:
        cluster["runner"] = args.runner
    if cluster:
        overrides["cluster"] = cluster
    
    return overrides


def _load(args: argparse.Namespace):
    from kube_scaler.core.config import load_config
    
    return load_config(args.config, **_overrides(args))


def scale(args: argparse.Namespace) -> int:
    """Run one scale orchestration."""
    from kube_scaler.core.exceptions import ConfigurationError
    from kube_scaler.core.retry import CancellationToken
    from kube_scaler.orchestrator import build_orchestrator
    
    try:
        config = _load(args)
        request = config.to_request()
    except (ConfigurationError, ValidationError, FileNotFoundError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG
    
    setup_logging(args.log_level or config.log_level)
    
    token = CancellationToken()
    signal.signal(signal.SIGTERM, lambda signum, frame: token.cancel())
    
    orchestrator = build_orchestrator(config, stream=sys.stdout.buffer)
    result = orchestrator.run(request, cancel_token=token)
    
    return EXIT_OK if result.success else EXIT_FAILED


def validate(args: argparse.Namespace) -> int:
    """Check the step configuration without touching the cluster."""
    from kube_scaler.core.models import parse_replica_count
    
    try:
        config = _load(args)
    except (ValidationError, FileNotFoundError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG
    
    errors = config.validate_fields()
    for field in ("api_url", "deployment", "namespace", "replica_count"):
        if field in errors:
            print(f"  ✗ {field}: {errors[field]}")
        else:
            print(f"  ✓ {field}")
    
    if errors:
        return EXIT_CONFIG
    
    print(
        f"Will scale {config.cluster.resource_kind.value} {config.deployment}* in "
        f"{config.namespace} to {parse_replica_count(config.replica_count)}"
    )
    return EXIT_OK


def init_config(path: str) -> int:
    """Write a sample configuration file."""
    from kube_scaler.core.config import ScalerConfig
    
    config_path = Path(path)
    if config_path.exists():
        print(f"Refusing to overwrite existing file: {config_path}", file=sys.stderr)
        return EXIT_FAILED
    
    config_path.parent.mkdir(parents=True, exist_ok=True)
    ScalerConfig.model_construct().to_yaml(config_path)
    
    print(f"Wrote sample configuration to: {config_path}")
    print()
    print("Next steps:")
    print("  1. Set api_url, deployment, namespace and replica_count")
    print(f"  2. Run: kube-scaler validate --config {config_path}")
    print(f"  3. Run: kube-scaler scale --config {config_path}")
    return EXIT_OK


def _add_step_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", "-c", help="Path to configuration file")
    parser.add_argument("--api-url", help="Cluster API endpoint")
    parser.add_argument("--deployment", "-d", help="Deployment name prefix")
    parser.add_argument("--namespace", "-n", help="Namespace of the deployment")
    parser.add_argument("--replicas", "-r", help="Requested replica count")
    parser.add_argument("--token", help="Bearer token (default: service account token)")
    parser.add_argument(
        "--kind",
        choices=["ReplicationController", "Deployment"],
        help="Kind of resource to scale",
    )
    parser.add_argument("--runner", choices=["api", "binary"], help="How to issue the scale")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Kube Scaler - scale a deployment and confirm the replica count",
        prog="kube-scaler",
    )
    
    subparsers = parser.add_subparsers(dest="command", help="Commands")
    
    # Scale command
    scale_parser = subparsers.add_parser("scale", help="Scale a deployment")
    _add_step_arguments(scale_parser)
    scale_parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=LOG_LEVELS,
        help="Log level",
    )
    
    # Validate command
    validate_parser = subparsers.add_parser("validate", help="Validate the step configuration")
    _add_step_arguments(validate_parser)
    
    # Init command
    init_parser = subparsers.add_parser("init-config", help="Write a sample configuration")
    init_parser.add_argument("path", nargs="?", default="scaler.yaml", help="Config file path")
    
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Main CLI entrypoint."""
    parser = build_parser()
    args = parser.parse_args(argv)
    
    if args.command == "scale":
        sys.exit(scale(args))
    
    elif args.command == "validate":
        sys.exit(validate(args))
    
    elif args.command == "init-config":
        sys.exit(init_config(args.path))
    
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
