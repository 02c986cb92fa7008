import argparse

from dotenv import load_dotenv

from costtop.config import Config
from costtop.fetch import DEFAULT_LOOKBACK_DAYS
from costtop.layout import LayoutSettings


def _positive_int(value: "str") -> "int":
    number = int(value)
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be positive: {value}")
    return number


def _non_negative_float(value: "str") -> "float":
    number = float(value)
    if number < 0:
        raise argparse.ArgumentTypeError(f"must not be negative: {value}")
    return number


def build_parser() -> "argparse.ArgumentParser":
    defaults = LayoutSettings()
    parser = argparse.ArgumentParser(
        prog="costtop",
        description="Terminal dashboard for OpenAI and Anthropic organization cost and usage",
    )
    parser.add_argument(
        "--log.level",
        dest="log_level",
        default="warning",
        choices=["debug", "info", "warning", "error"],
        help="Log level (default: warning)",
    )
    parser.add_argument(
        "--log.file",
        dest="log_file",
        default="",
        help="Write logs to this file instead of stderr",
    )
    parser.add_argument(
        "--env-file",
        dest="env_file",
        default="",
        help="Load OPENAI_ADMIN_KEY / ANTHROPIC_ADMIN_KEY from a dotenv file",
    )
    parser.add_argument(
        "--metrics.listen-address",
        dest="metrics_listen_address",
        default="",
        help="Expose fetch metrics for Prometheus on this address (e.g. :9186)",
    )
    parser.add_argument(
        "--refresh.interval",
        dest="refresh_interval",
        type=_non_negative_float,
        default=0,
        help="Refresh the displayed provider every N seconds (default: 0, off)",
    )
    parser.add_argument(
        "--fetch.lookback-days",
        dest="lookback_days",
        type=_positive_int,
        default=DEFAULT_LOOKBACK_DAYS,
        help=f"Days of history to fetch (default: {DEFAULT_LOOKBACK_DAYS})",
    )
    parser.add_argument(
        "--chart.min-bar-width",
        dest="min_bar_width",
        type=_positive_int,
        default=defaults.min_bar_width,
        help=f"Narrowest bar in columns (default: {defaults.min_bar_width})",
    )
    parser.add_argument(
        "--chart.max-bar-width",
        dest="max_bar_width",
        type=_positive_int,
        default=defaults.max_bar_width,
        help=f"Widest bar in columns (default: {defaults.max_bar_width})",
    )
    parser.add_argument(
        "--chart.outlier-ratio",
        dest="outlier_ratio",
        type=_non_negative_float,
        default=defaults.outlier_ratio,
        help="Compress the scale when the tallest bar exceeds this multiple of p75",
    )
    parser.add_argument(
        "--chart.compressed-ratio",
        dest="compressed_ratio",
        type=_non_negative_float,
        default=defaults.compressed_ratio,
        help="Height of the compressed scale as a multiple of p75",
    )
    return parser


def parse_args(argv: "list[str] | None" = None) -> "Config":
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.min_bar_width > args.max_bar_width:
        parser.error("--chart.min-bar-width must not exceed --chart.max-bar-width")

    # values already exported in the environment win over the file
    if args.env_file:
        load_dotenv(args.env_file, override=False)

    config = Config.from_env()
    config.log_level = args.log_level
    config.log_file = args.log_file
    config.env_file = args.env_file
    config.metrics_listen_address = args.metrics_listen_address
    config.refresh_interval = args.refresh_interval
    config.lookback_days = args.lookback_days
    config.layout = LayoutSettings(
        min_bar_width=args.min_bar_width,
        max_bar_width=args.max_bar_width,
        outlier_ratio=args.outlier_ratio,
        compressed_ratio=args.compressed_ratio,
    )
    return config
