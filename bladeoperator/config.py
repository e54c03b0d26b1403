"""Operator command-line configuration and product-specific settings."""

from __future__ import annotations

import argparse
from dataclasses import dataclass, field

from bladeoperator import version

OPERATOR_CHAOSBLADE_PATH = "/opt/chaosblade"
OPERATOR_CHAOSBLADE_BIN = "/opt/chaosblade/bin"
OPERATOR_CHAOSBLADE_LIB = "/opt/chaosblade/lib"
OPERATOR_CHAOSBLADE_YAML = "/opt/chaosblade/yaml"
OPERATOR_CHAOSBLADE_BLADE = "/opt/chaosblade/blade"

DAEMONSET_POD_NAME = "chaosblade-tool"
DEFAULT_REMOVE_BLADE_INTERVAL = "72h"
DAEMONSET_POD_LABELS = {"app": "chaosblade-tool"}

AHAS = "ahas"
COMMUNITY = "community"
_PROD_ENV = "prod"
_PUBLIC_REGION = "cn-public"

_TRUE = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE = {"0", "f", "F", "FALSE", "false", "False"}


def aliyun_image_repository(region_id: str, environment: str) -> str:
    """Image repository of the chaosblade tool on the cloud provider."""
    if region_id == _PUBLIC_REGION:
        if environment == _PROD_ENV:
            return "registry.cn-hangzhou.aliyuncs.com/ahascr-public/chaosblade-tool"
        return "registry.cn-hangzhou.aliyuncs.com/ahas-public/chaosblade-tool"
    if environment == _PROD_ENV:
        return f"registry-vpc.{region_id}.aliyuncs.com/ahascr/chaosblade-tool"
    return f"registry-vpc.{region_id}.aliyuncs.com/ahas/chaosblade-tool"


@dataclass
class OperatorConfig:
    """All settings the operator reads from its command line."""

    log_level: str = "info"
    reconcile_count: int = 20
    qps: float = 20.0
    aliyun_region_id: str = ""
    aliyun_environment: str = ""
    chaosblade_version: str = version.VERSION
    chaosblade_image_repository: str = "chaosbladeio/chaosblade-tool"
    chaosblade_image_pull_policy: str = "IfNotPresent"
    daemonset_enable: bool = False
    remove_blade_interval: str = DEFAULT_REMOVE_BLADE_INTERVAL
    chaosblade_download_url: str = ""
    chaosblade_namespace: str = "chaosblade"
    fuse_sidecar_image: str = ""
    fuse_server_port: int = 65534
    webhook_port: int = 9443
    webhook_enable: bool = False
    product: str = version.PRODUCT
    daemonset_pod_labels: dict[str, str] = field(default_factory=lambda: dict(DAEMONSET_POD_LABELS))

    def image_repository(self) -> str:
        """Image repository of the chaosblade tool for the configured product."""
        if self.product == COMMUNITY:
            return self.chaosblade_image_repository
        if self.product == AHAS:
            return aliyun_image_repository(self.aliyun_region_id, self.aliyun_environment)
        raise ValueError(f"unknown product: {self.product!r}")


def _parse_bool(text: str) -> bool:
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise argparse.ArgumentTypeError(f"invalid boolean value {text!r}")


def _add_bool(parser: argparse.ArgumentParser, flag: str, dest: str, help_text: str) -> None:
    parser.add_argument(
        flag, dest=dest, type=_parse_bool, nargs="?", const=True, default=False, help=help_text
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the parser for every operator flag."""
    defaults = OperatorConfig()
    parser = argparse.ArgumentParser(prog="operator", allow_abbrev=False)
    parser.add_argument("--log-level", dest="log_level", default=defaults.log_level,
                        help="Log level, such as panic|fatal|error|warn|info|debug|trace")
    parser.add_argument("--reconcile-count", dest="reconcile_count", type=int,
                        default=defaults.reconcile_count,
                        help="Max concurrent reconciles count, default value is 20")
    parser.add_argument("--qps", dest="qps", type=float, default=defaults.qps,
                        help="qps of kubernetes client")

    parser.add_argument("--aliyun-region-id", dest="aliyun_region_id", default="",
                        help="Region id for cloud provider")
    parser.add_argument("--aliyun-environment", dest="aliyun_environment", default="",
                        help="Environment for cloud provider")

    parser.add_argument("--chaosblade-version", dest="chaosblade_version",
                        default=defaults.chaosblade_version, help="Chaosblade tool version")
    parser.add_argument("--chaosblade-image-repository", dest="chaosblade_image_repository",
                        default=defaults.chaosblade_image_repository,
                        help="Image repository of chaosblade tool")
    parser.add_argument("--chaosblade-image-pull-policy", dest="chaosblade_image_pull_policy",
                        default=defaults.chaosblade_image_pull_policy,
                        help="Pulling policy of chaosblade image, default value is IfNotPresent.")
    _add_bool(parser, "--daemonset-enable", "daemonset_enable",
              "Deploy chaosblade daemonset to resolve chaos experiment environment of network.")
    parser.add_argument("--remove-blade-interval", dest="remove_blade_interval",
                        default=DEFAULT_REMOVE_BLADE_INTERVAL,
                        help="Periodically clean up blade state is destroying.")
    parser.add_argument("--chaosblade-download-url", dest="chaosblade_download_url", default="",
                        help="The chaosblade downloaded address used in download mode.")
    parser.add_argument("--chaosblade-namespace", dest="chaosblade_namespace",
                        default=defaults.chaosblade_namespace,
                        help="The chaosblade deployment namespace")

    parser.add_argument("--fuse-sidecar-image", dest="fuse_sidecar_image", default="",
                        help="Fuse sidecar image")
    parser.add_argument("--fuse-server-port", dest="fuse_server_port", type=int,
                        default=defaults.fuse_server_port, help="Fuse server port")
    parser.add_argument("--webhook-port", dest="webhook_port", type=int,
                        default=defaults.webhook_port, help="The port on which to serve HTTPS.")
    _add_bool(parser, "--webhook-enable", "webhook_enable", "Whether to enable webhook")
    return parser


def parse_config(argv: list[str] | None = None) -> OperatorConfig:
    """Parse operator flags into a configuration; exits on invalid input."""
    namespace = build_parser().parse_args(argv)
    return OperatorConfig(**vars(namespace))