#!/usr/bin/env python3
"""
Main entry point for TA Chain.

Sub-commands:
    list                        Computations offered by the provider
    describe NAME               Option, input and output schema
    compute FILE NAME           Load candles and apply one computation
    chart FILE                  Write a Gnuplot chart script
"""

from __future__ import annotations

import argparse
import importlib
import sys
from pathlib import Path
from typing import Any, Sequence

import pandas as pd

from ta_chain.charting.gnuplot import GnuplotChart
from ta_chain.config.settings import Settings, get_settings
from ta_chain.core.data_types import (
    ComputationDescriptor,
    InputKind,
    OptionKind,
    parse_date,
)
from ta_chain.core.exceptions import InvalidConfigError, TAChainError
from ta_chain.core.options import OptionSet
from ta_chain.core.series import CandleBundle, Series
from ta_chain.data.loader import load_candles
from ta_chain.indicators.engine import Indicator
from ta_chain.indicators.registry import (
    ComputationProvider,
    FunctionProvider,
    provider_session,
)
from ta_chain.indicators.talib_provider import TalibProvider
from ta_chain.monitoring.logger import LogCategory, LogFormat, get_logger, setup_logging


logger = get_logger("main", LogCategory.SYSTEM)


def build_provider(name: str, modules: Sequence[str] = ()) -> ComputationProvider:
    """Create the provider configured under ``name``.

    The function provider starts empty; each module in ``modules`` must
    define ``register(provider)`` and adds its computations there.
    """
    if name == "talib":
        return TalibProvider()
    if name == "function":
        if not modules:
            raise InvalidConfigError(
                "The function provider needs at least one computation module",
                config_key="provider.modules",
                expected="module names defining register(provider)",
            )
        provider = FunctionProvider()
        for module_name in modules:
            try:
                module = importlib.import_module(module_name)
            except ImportError as exc:
                raise InvalidConfigError(
                    f"Cannot import computation module {module_name}: {exc}",
                    config_key="provider.modules",
                    value=module_name,
                ) from exc
            register = getattr(module, "register", None)
            if not callable(register):
                raise InvalidConfigError(
                    f"Computation module {module_name} defines no register(provider)",
                    config_key="provider.modules",
                    value=module_name,
                )
            register(provider)
            logger.debug(f"Registered computations from {module_name}")
        return provider
    raise InvalidConfigError(
        f"Unknown provider: {name}",
        config_key="provider.name",
        value=name,
        expected="talib or function",
    )


def parse_option_values(
    descriptor: ComputationDescriptor,
    pairs: Sequence[str],
) -> OptionSet:
    """Turn ``key=value`` strings into an option set.

    Values are converted to the kind the computation declares, so
    ``nbdevup=2`` binds as a real. Unknown names are kept as typed and
    rejected when the indicator binds them.
    """
    kinds = {option.name: option.kind for option in descriptor.options}
    options = OptionSet()
    for pair in pairs:
        key, sep, raw = pair.partition("=")
        if not sep or not key:
            raise InvalidConfigError(
                f"Option must be key=value: {pair!r}",
                config_key="option",
                value=pair,
            )
        kind = kinds.get(key)
        try:
            if kind == OptionKind.REAL:
                value: int | float = float(raw)
            elif kind == OptionKind.INTEGER:
                value = int(raw)
            else:
                value = int(raw) if raw.lstrip("-").isdigit() else float(raw)
        except ValueError as exc:
            raise InvalidConfigError(
                f"Option '{key}' has a non-numeric value: {raw!r}",
                config_key=key,
                value=raw,
            ) from exc
        options.add(key, value)
    return options


def select_operands(
    descriptor: ComputationDescriptor,
    candles: CandleBundle,
) -> list[CandleBundle | Series]:
    """Choose bundle members for each declared input.

    Price inputs take the whole bundle. Real inputs named after a bundle
    field (``high``, ``volume``...) take that member; any other real input
    takes the close.
    """
    operands: list[CandleBundle | Series] = []
    for declared in descriptor.inputs:
        if declared.kind == InputKind.PRICE:
            operands.append(candles)
        elif declared.name in CandleBundle.PRICE_FIELDS:
            operands.append(getattr(candles, declared.name))
        else:
            operands.append(candles.close)
    return operands


def parse_indicator_spec(spec: str) -> tuple[str, list[str]]:
    """Split ``NAME[:key=value,...]`` into a name and option pairs."""
    name, _, rest = spec.partition(":")
    pairs = [pair for pair in rest.split(",") if pair]
    return name, pairs


def _date_arg(text: str) -> Any:
    try:
        return parse_date(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="ta-chain",
        description="Chained technical analysis indicators",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # List command
    subparsers.add_parser("list", help="List available computations")

    # Describe command
    describe_parser = subparsers.add_parser("describe", help="Show a computation schema")
    describe_parser.add_argument("name", help="Computation name")

    # Compute command
    compute_parser = subparsers.add_parser("compute", help="Apply a computation to a candle file")
    compute_parser.add_argument("file", type=Path, help="Candle file")
    compute_parser.add_argument("name", help="Computation name")
    compute_parser.add_argument(
        "--option",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Computation option, repeatable",
    )
    compute_parser.add_argument(
        "--tail",
        type=int,
        default=10,
        help="Number of trailing rows to print",
    )

    # Chart command
    chart_parser = subparsers.add_parser("chart", help="Write a Gnuplot chart script")
    chart_parser.add_argument("file", type=Path, help="Candle file")
    chart_parser.add_argument(
        "--indicator",
        action="append",
        default=[],
        metavar="NAME[:KEY=VALUE,...]",
        help="Indicator drawn on its own pane, repeatable",
    )
    chart_parser.add_argument("--name", help="Chart name, the file stem by default")

    for sub in (compute_parser, chart_parser):
        sub.add_argument("--begin", type=_date_arg, help="First date loaded (YYYY-MM-DD)")
        sub.add_argument("--end", type=_date_arg, help="Date the read stops at (YYYY-MM-DD)")

    # Common arguments
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to configuration file",
    )
    parser.add_argument(
        "--provider",
        choices=["talib", "function"],
        help="Computation provider, overrides the configured one",
    )
    parser.add_argument(
        "--module",
        action="append",
        default=[],
        help="Module registering computations with the function provider (repeatable)",
    )
    parser.add_argument(
        "--log-level",
        choices=["TRACE", "DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level, overrides the configured one",
    )
    parser.add_argument(
        "--log-format",
        choices=["json", "text"],
        help="Log format, overrides the configured one",
    )

    return parser.parse_args(argv)


def _load(args: argparse.Namespace, settings: Settings) -> CandleBundle:
    return load_candles(
        settings.data.resolve(args.file),
        begin=args.begin or settings.data.begin,
        end=args.end or settings.data.end,
        strict=settings.data.strict_load,
    )


def run_list(provider: ComputationProvider) -> None:
    """Print every computation name."""
    for name in provider.list_computations():
        print(name)


def run_describe(args: argparse.Namespace, provider: ComputationProvider) -> None:
    """Print the schema of one computation."""
    info = provider.describe(args.name).to_dict()
    print(f"{info['name']} ({info['group'] or 'ungrouped'})")
    for title in ("options", "inputs", "outputs"):
        print(f"  {title}:")
        for entry in info[title]:
            details = ", ".join(f"{k}={v}" for k, v in entry.items() if k != "name")
            print(f"    {entry['name']}: {details}")


def run_compute(args: argparse.Namespace, settings: Settings, provider: ComputationProvider) -> None:
    """Load candles, apply one computation and print the tail of its outputs."""
    candles = _load(args, settings)
    descriptor = provider.describe(args.name)
    indicator = Indicator(
        args.name,
        *select_operands(descriptor, candles),
        options=parse_option_values(descriptor, args.option),
        provider=provider,
    )
    logger.info(
        f"Computed {indicator.name} over {len(candles)} candles",
        extra={"extra_data": {"first": indicator.output_first, "lookback": indicator.lookback}},
    )
    valid = f"[{indicator.output_first}, {indicator.visible_length})"
    print(f"{indicator.display_name()}: valid {valid}")
    frame = indicator.to_frame(index=pd.DatetimeIndex(candles.dates.values, name="date"))
    if args.tail > 0:
        print(frame.tail(args.tail).to_string())


def run_chart(args: argparse.Namespace, settings: Settings, provider: ComputationProvider) -> None:
    """Write a chart with the default candle and volume panes plus indicators."""
    candles = _load(args, settings)
    name = args.name or Path(args.file).stem
    output_dir = settings.chart.output_dir
    chart = GnuplotChart(
        name,
        candles,
        script_path=output_dir / f"{name}.gp",
        image_path=output_dir / f"{name}.png",
        width=settings.chart.width,
        pane_height=settings.chart.pane_height,
        bars=settings.chart.bars,
    )
    for spec in args.indicator:
        computation, pairs = parse_indicator_spec(spec)
        descriptor = provider.describe(computation)
        indicator = Indicator(
            computation,
            *select_operands(descriptor, candles),
            options=parse_option_values(descriptor, pairs),
            provider=provider,
        )
        chart.add_pane(computation).draw_indicator(indicator)
    print(chart.render())


def main(argv: Sequence[str] | None = None) -> None:
    """Main entry point."""
    args = parse_args(argv)

    try:
        settings = Settings.from_yaml(args.config) if args.config else get_settings()
    except TAChainError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)

    # Setup logging
    level = args.log_level or settings.logging.level
    log_format = LogFormat(args.log_format or settings.logging.format)
    setup_logging(level=level, log_format=log_format, log_file=settings.logging.file_path)

    logger.debug(
        f"TA Chain v{settings.app_version}",
        extra={"extra_data": {"command": args.command}},
    )

    try:
        provider = build_provider(
            args.provider or settings.provider.name,
            [*settings.provider.modules, *args.module],
        )
        with provider_session(provider) as provider:
            if args.command == "list":
                run_list(provider)
            elif args.command == "describe":
                run_describe(args, provider)
            elif args.command == "compute":
                run_compute(args, settings, provider)
            elif args.command == "chart":
                run_chart(args, settings, provider)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except TAChainError as e:
        logger.error(f"{args.command} failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
