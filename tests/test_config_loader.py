from pathlib import Path

import pytest
import yaml

from watershed_rf.utils.config_loader import (load_project_config, deep_format, resolve_config_roots,
                                              get_index_config)
from watershed_rf.training.condition_classification import scheme_from_config

REPO_CONFIG = Path(__file__).resolve().parents[1] / "config" / "project_config.yaml"


def test_load_project_config_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_project_config(config_path=str(tmp_path / "missing.yaml"))


def test_deep_format_only_replaces_named_keys():
    config = {"a": "{results_root}/x", "b": ["{raw_data_root}/y", "{z}"], "c": 3}
    formatted = deep_format(config, results_root="out", raw_data_root="raw")
    assert formatted == {"a": "out/x", "b": ["raw/y", "{z}"], "c": 3}


def test_resolve_config_roots(tmp_path):
    config = {
        "global": {"paths": {"raw_data_root": "~/data", "results_root": "results",
                             "ps6_params_input": "{raw_data_root}/ps6.csv"}},
        "asci": {"paths": {"output_dir": "{results_root}/asci"}}
    }
    config_path = tmp_path / "config.yaml"
    config_path.write_text(yaml.safe_dump(config))

    resolved = resolve_config_roots(load_project_config(config_path=str(config_path)))

    assert resolved["asci"]["paths"]["output_dir"] == "results/asci"
    assert resolved["global"]["paths"]["ps6_params_input"].endswith("data/ps6.csv")
    assert "~" not in resolved["global"]["paths"]["ps6_params_input"]


def test_get_index_config_missing_block_and_keys():
    config = {"asci": {"paths": {}, "response_col": "asci"}}
    with pytest.raises(KeyError):
        get_index_config(config, "cram")
    with pytest.raises(KeyError):
        get_index_config(config, "asci")


def test_shipped_config_is_complete():
    config = resolve_config_roots(load_project_config(config_path=str(REPO_CONFIG)))

    for index_name in config["global"]["pipeline_settings"]["indices_to_process"]:
        index_cfg = get_index_config(config, index_name)
        scheme = scheme_from_config(index_name, index_cfg["classification"])
        assert len(index_cfg["classification"]["colours"]) == len(scheme.labels)
        assert set(index_cfg["seeds"]) == {"dedup", "split", "rfe", "forest"}

    assert config["cram_physical"]["classification"]["thresholds"] == [66]
    assert config["asci"]["classification"]["thresholds"] == [0.67, 0.82, 0.93]


def test_shipped_config_site_assignment_and_insets():
    config = resolve_config_roots(load_project_config(config_path=str(REPO_CONFIG)))

    site_cfg = config["ripram"]["site_assignment"]
    assert site_cfg["distance"] == 40
    assert site_cfg["crs"] == "EPSG:4269"
    assert config["ripram"]["paths"]["sites_output"] == "results/ripram_sites.csv"

    insets = config["global"]["visualisations"]["maps"]["insets"]
    assert [inset["name"] for inset in insets] == ["Ventura River", "San Juan Creek", "San Diego River"]
    assert all(inset["path"].startswith("data/01_raw/") for inset in insets)
