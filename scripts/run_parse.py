"""
Demo script: parse and export CONSAR files via the public API.

Usage:
    python scripts/run_parse.py inputs/20240131_SB_530_000123.0300
    python scripts/run_parse.py inputs/*.0314 --csv
    python scripts/run_parse.py inputs/some_file.0100 --validate-only

Each input file gets its own output subdirectory and config YAML under
outputs/. Detection, parse and export statistics are logged.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

OUTPUT_ROOT = Path("outputs")

# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
    datefmt="%H:%M:%S",
)
log = logging.getLogger("run_parse")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _derive_name(input_path: Path) -> str:
    """Derive a short directory/config name from the input filename."""
    # 20240131_SB_530_000123.0300 -> 20240131_SB_530_000123_0300
    return input_path.name.replace(".", "_")


def _report(input_path: Path) -> None:
    import consar_ingest

    report = consar_ingest.validate_file(input_path)
    log.info("  Findings: %d (critical=%s)", len(report.findings), report.has_critical)
    for finding in report.findings:
        log.info("    [%s] %s: %s", finding.severity.value, finding.code, finding.message)
    log.info("  Downstream rules: %d", len(report.downstream_rules))


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main() -> None:
    import consar_ingest
    from consar_ingest.config import load_config, save_config
    from consar_ingest.exceptions import ConsarIngestError

    args = [a for a in sys.argv[1:] if not a.startswith("--")]
    as_csv = "--csv" in sys.argv
    validate_only = "--validate-only" in sys.argv

    if not args:
        log.error("No input files given")
        sys.exit(2)

    for arg in args:
        input_path = Path(arg)
        if not input_path.exists():
            log.warning("SKIP  %s  (file not found)", input_path)
            continue

        name = _derive_name(input_path)
        output_dir = str(OUTPUT_ROOT / name)
        config_path = str(OUTPUT_ROOT / f"{name}.yaml")

        log.info("=" * 70)
        log.info("Processing: %s", input_path)
        log.info("  output_dir  : %s", output_dir)
        log.info("  config_path : %s", config_path)
        log.info("=" * 70)

        try:
            if validate_only:
                _report(input_path)
                continue

            config = consar_ingest.init(
                str(input_path),
                output_dir=output_dir,
                config_path=config_path,
                run_immediately=not as_csv,
            )
            if as_csv:
                config.output.output_format = "csv"
                save_config(config, config_path)
                consar_ingest.ingest(config_path)
            log.info("  Kind: %s", load_config(config_path).source.file_kind.label)
        except ConsarIngestError as exc:
            log.error("FAILED  %s: %s", input_path, exc)
            continue

        log.info("Done: %s\n", name)

    log.info("All files processed.")


if __name__ == "__main__":
    main()
