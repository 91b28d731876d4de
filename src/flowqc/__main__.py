"""Command-line entry point for the flowqc package."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np

from .config import DEFAULT_CONFIG_PATH, load_config
from .exceptions import ChannelNotFound, FlowQCError
from .export import build_report, write_mask_csv, write_peaks_csv, write_report_json
from .logger import configure_logging, logger
from .qc import load_qc_settings, run_quality_control
from .qc.doublets import remove_doublets
from .qc.margins import remove_margins
from .qc.monotonic import find_monotonic_channels
from .qc.transform import DEFAULT_COFACTOR, transform_channels
from .sources import FrameEventSource


def _load_config(args: argparse.Namespace) -> Dict[str, Any]:
    if args.config is None:
        return load_config(DEFAULT_CONFIG_PATH) if DEFAULT_CONFIG_PATH.exists() else {}
    return load_config(Path(args.config))


def _preprocess(source: FrameEventSource, channels: List[str], config: Dict[str, Any], args: argparse.Namespace) -> np.ndarray:
    pre_cfg = config.get("preprocessing", {}) or {}
    keep = np.ones(source.event_count(), dtype=bool)

    if pre_cfg.get("remove_margins", True) and not args.keep_margins:
        margin_channels = list(pre_cfg.get("margin_channels") or channels)
        margins = remove_margins(source, margin_channels)
        keep &= margins.keep_mask

    if pre_cfg.get("remove_doublets", True) and not args.keep_doublets:
        area, height = (pre_cfg.get("doublet_channels") or ["FSC-A", "FSC-H"])[:2]
        nmad = args.doublet_nmad if args.doublet_nmad is not None else float(pre_cfg.get("doublet_nmad", 4.0))
        try:
            doublets = remove_doublets(source, area, height, nmad=nmad, b=float(pre_cfg.get("doublet_b", 0.0)))
        except ChannelNotFound as exc:
            logger.warning(f"Doublet removal skipped: {exc}")
        else:
            keep &= doublets.keep_mask
    return keep


def cmd_run(args: argparse.Namespace) -> None:
    config = _load_config(args)
    export_cfg = config.get("export", {}) or {}
    source = FrameEventSource.from_path(args.input)

    overrides = {
        "channels": args.channels,
        "mode": args.mode,
        "mad_threshold": args.mad,
        "it_limit": args.it_limit,
        "consecutive_windows": args.consecutive_bins,
        "window_size": args.window_size,
        "remove_zeros": True if args.remove_zeros else None,
        "seed": args.seed,
        "n_jobs": args.n_jobs,
    }
    settings = load_qc_settings(config, overrides)
    if not settings.channels:
        settings.channels = source.fluorescence_channel_names()
        logger.info(f"No channels given, using fluorescence channels: {settings.channels}")

    pre_keep = _preprocess(source, settings.channels, config, args)
    filtered = source.apply_mask(pre_keep)
    pre_cfg = config.get("preprocessing", {}) or {}
    cofactor = None
    if pre_cfg.get("transform", True) and not args.no_transform:
        cofactor = args.cofactor if args.cofactor is not None else float(pre_cfg.get("transform_cofactor", DEFAULT_COFACTOR))
        filtered = transform_channels(filtered, settings.channels, cofactor)
    result = run_quality_control(filtered, settings)
    monotonic = find_monotonic_channels(filtered, settings.channels, result.windows)

    final_keep = pre_keep.copy()
    final_keep[pre_keep] = result.keep_mask

    output_dir = Path(args.output_dir)
    stem = Path(args.input).stem
    cleaned = source.apply_mask(final_keep).frame
    output_dir.mkdir(parents=True, exist_ok=True)
    cleaned_path = output_dir / f"{stem}_QC.csv"
    cleaned.to_csv(cleaned_path, index=False)
    logger.info(f"Cleaned events written to {cleaned_path}")

    if not args.no_mask:
        mask_path = write_mask_csv(
            final_keep,
            output_dir / f"{stem}_mask.csv",
            mask_format=args.mask_format or export_cfg.get("mask_format", "numeric"),
            column_name=export_cfg.get("column_name", "PeacoQC"),
            good_value=int(export_cfg.get("good_value", 2000)),
            bad_value=int(export_cfg.get("bad_value", 6000)),
        )
        logger.info(f"Mask written to {mask_path}")
    if not args.no_report:
        report = build_report(
            result,
            source_name=str(args.input),
            extra={
                "n_events_input": source.event_count(),
                "n_events_kept": int(final_keep.sum()),
                "preprocessing_removed": int((~pre_keep).sum()),
                "transform_cofactor": cofactor,
                "increasing_channels": monotonic.increasing,
                "decreasing_channels": monotonic.decreasing,
                "monotonic_correlations": monotonic.correlations,
            },
        )
        report_path = write_report_json(report, output_dir / f"{stem}_report.json")
        logger.info(f"Report written to {report_path}")
    if args.peaks:
        peaks_path = write_peaks_csv(result, output_dir / f"{stem}_peaks.csv")
        logger.info(f"Peaks written to {peaks_path}")

    print(f"Kept {int(final_keep.sum())} of {source.event_count()} events ({result.percentage_removed:.2f}% removed by QC).")


def cmd_channels(args: argparse.Namespace) -> None:
    source = FrameEventSource.from_path(args.input)
    fluorescence = set(source.fluorescence_channel_names())
    for name in source.channel_names():
        marker = "fluorescence" if name in fluorescence else "scatter/time"
        print(f"{name}\t{marker}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Quality control of flow-cytometry event tables.")
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--log-file", help="Also write DEBUG logs to this file.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Run quality control on a CSV/TSV/parquet event table.")
    run_parser.add_argument("input", type=Path)
    run_parser.add_argument("--config", default=None, help=f"YAML config (default: {DEFAULT_CONFIG_PATH} if present).")
    run_parser.add_argument("--channels", nargs="+", help="Channels to check (default: fluorescence channels).")
    run_parser.add_argument("--mode", choices=["both", "isolation_forest", "mad", "none"])
    run_parser.add_argument("--mad", type=float, help="MAD threshold.")
    run_parser.add_argument("--it-limit", type=float, help="Isolation forest score limit.")
    run_parser.add_argument("--consecutive-bins", type=int, help="Minimum length of a kept run of windows.")
    run_parser.add_argument("--window-size", type=int, help="Events per window.")
    run_parser.add_argument("--remove-zeros", action="store_true")
    run_parser.add_argument("--keep-margins", action="store_true", help="Skip margin event removal.")
    run_parser.add_argument("--keep-doublets", action="store_true", help="Skip doublet removal.")
    run_parser.add_argument("--doublet-nmad", type=float)
    run_parser.add_argument("--no-transform", action="store_true", help="Run QC on the linear scale.")
    run_parser.add_argument("--cofactor", type=float, help="Arcsinh cofactor for the QC channels.")
    run_parser.add_argument("--seed", type=int)
    run_parser.add_argument("--n-jobs", type=int)
    run_parser.add_argument("--output-dir", default="flowqc_output")
    run_parser.add_argument("--mask-format", choices=["boolean", "numeric"])
    run_parser.add_argument("--no-mask", action="store_true", help="Do not write the per-event mask CSV.")
    run_parser.add_argument("--no-report", action="store_true", help="Do not write the JSON report.")
    run_parser.add_argument("--peaks", action="store_true", help="Also write the clustered peaks table.")
    run_parser.set_defaults(func=cmd_run)

    channels_parser = subparsers.add_parser("channels", help="List channels of an event table.")
    channels_parser.add_argument("input", type=Path)
    channels_parser.set_defaults(func=cmd_channels)

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level, args.log_file)
    try:
        args.func(args)
    except FlowQCError as exc:
        logger.error(f"{type(exc).__name__}: {exc}")
        sys.exit(1)


if __name__ == "__main__":
    main()
