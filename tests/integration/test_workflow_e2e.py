"""
Integration tests: config round-trip workflow.

Tests the full cycle: init() -> edit config -> ingest() rebuild, and
the rejection paths for files and configs that cannot be ingested.
"""

from __future__ import annotations

import pandas as pd
import pytest

from consar_ingest import ingest, init
from consar_ingest.config import load_config, save_config
from consar_ingest.exceptions import ConfigValidationError, UnknownFileKindError
from tests.conftest import (
    PORTFOLIO_NAME,
    portfolio_301,
    portfolio_309,
    record_count_header,
    write_lines,
)

_EXPECTED_TABLES = ["header", "detail_301", "footer", "errors", "warnings", "findings"]


def _write_portfolio(tmp_path):
    lines = [
        record_count_header(2),
        portfolio_301(),
        portfolio_301(isin=""),
        portfolio_309(2),
    ]
    return write_lines(tmp_path / PORTFOLIO_NAME, lines)


@pytest.mark.integration
class TestConfigRoundtrip:
    """Tests for the config-first workflow."""

    def test_init_writes_config_only(self, tmp_path):
        config_path = tmp_path / "consar_config.yaml"
        cfg = init(
            input_path=str(_write_portfolio(tmp_path)),
            output_dir=str(tmp_path / "out"),
            config_path=str(config_path),
            run_immediately=False,
        )
        assert cfg.source.file_kind.value == "0300"
        assert load_config(config_path) == cfg
        assert not (tmp_path / "out").exists()

    def test_init_exports_all_tables(self, tmp_path):
        out = tmp_path / "out"
        init(
            input_path=str(_write_portfolio(tmp_path)),
            output_dir=str(out),
            config_path=str(tmp_path / "consar_config.yaml"),
        )
        for name in _EXPECTED_TABLES + ["_meta"]:
            assert (out / f"{name}.parquet").exists(), name

        details = pd.read_parquet(out / "detail_301.parquet")
        assert list(details["is_valid"]) == [True, False]
        meta = pd.read_parquet(out / "_meta.parquet").iloc[0]
        assert meta["downstream_rules"].startswith("CART_STR_01,")

    def test_init_exports_detection_warnings(self, tmp_path):
        """A name/content disagreement reaches the exported warnings table."""
        # content says 0314 with confidence 80; the standard name (95) wins
        path = write_lines(tmp_path / PORTFOLIO_NAME, [
            record_count_header(0, layout_code="0314"),
            portfolio_301(),
        ])
        out = tmp_path / "out"
        init(
            input_path=str(path),
            output_dir=str(out),
            config_path=str(tmp_path / "consar_config.yaml"),
        )

        warnings = pd.read_parquet(out / "warnings.parquet")
        first = warnings.iloc[0]
        assert first["code"] == "DETECTION"
        assert pd.isna(first["line_number"])
        assert "Derivados" in first["message"]

    def test_edit_cycle_to_csv_without_invalid(self, tmp_path):
        """init() -> switch to CSV and drop invalid -> ingest() rebuilds."""
        config_path = str(tmp_path / "consar_config.yaml")
        init(
            input_path=str(_write_portfolio(tmp_path)),
            output_dir=str(tmp_path / "out"),
            config_path=config_path,
            run_immediately=False,
        )

        cfg = load_config(config_path)
        cfg.output.output_format = "csv"
        cfg.output.include_invalid = False
        save_config(cfg, config_path)

        written = ingest(config_path=config_path)
        assert len(written) == len(_EXPECTED_TABLES) + 1
        assert all(p.endswith(".csv") for p in written)

        out = tmp_path / "out"
        details = pd.read_csv(out / "detail_301.csv", encoding="utf-8-sig")
        assert len(details) == 1
        meta = pd.read_csv(out / "_meta.csv", encoding="utf-8-sig")
        assert meta.loc[0, "records_dropped"] == 1

    def test_ingest_rejects_unknown_version(self, tmp_path):
        config_path = str(tmp_path / "consar_config.yaml")
        init(
            input_path=str(_write_portfolio(tmp_path)),
            output_dir=str(tmp_path / "out"),
            config_path=config_path,
            run_immediately=False,
        )
        cfg = load_config(config_path)
        cfg.source.schema_version = "9.9"
        save_config(cfg, config_path)

        with pytest.raises(ConfigValidationError, match="9.9"):
            ingest(config_path=config_path)

    def test_ingest_missing_config(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            ingest(config_path=str(tmp_path / "nope.yaml"))


@pytest.mark.integration
class TestInitRejectsNonDataFiles:
    """init() refuses files it cannot parse."""

    def test_unrecognised_file(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text("hello\n", encoding="latin-1")
        with pytest.raises(UnknownFileKindError):
            init(input_path=str(path), config_path=str(tmp_path / "c.yaml"))

    def test_container(self, tmp_path):
        path = tmp_path / "paquete.zip"
        path.write_bytes(b"PK\x03\x04")
        with pytest.raises(UnknownFileKindError):
            init(input_path=str(path), config_path=str(tmp_path / "c.yaml"))
        assert not (tmp_path / "c.yaml").exists()
