import os
import json
import hashlib
import platform
import sklearn
import numpy as np
import pandas as pd
from datetime import datetime

def sha256(path):
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(1<<20), b""):
            h.update(chunk)
    return h.hexdigest()

def _hash_inputs(input_paths):
    hashes = {}
    for name, path in input_paths.items():
        hashes[name] = {"path": path, "sha256": sha256(path) if path and os.path.isfile(path) else None}
    return hashes

def save_run_manifest(run_dir, index_name, config, seeds, input_paths, selected_predictors,
                      train_ids, test_ids, binding_summary=None, rmse=None):
    """
    Record what went into a run (seeds, library versions, input file hashes, config,
    selected predictors and split membership) so results can be reproduced.
    """
    # Make run dir
    os.makedirs(run_dir, exist_ok=True)

    manifest = {
        "timestamp": datetime.now().isoformat(timespec="seconds"),
        "index": index_name,
        "seeds": {name: int(seed) for name, seed in seeds.items()},
        "versions": {
            "python": platform.python_version(),
            "numpy": np.__version__,
            "pandas": pd.__version__,
            "sklearn": sklearn.__version__,
        },
        "inputs": _hash_inputs(input_paths),
        "selected_predictors": list(selected_predictors),
        "splits": {
            # ints for JSON (numpy ints are not serialisable)
            "train": sorted(int(i) for i in train_ids),
            "test": sorted(int(i) for i in test_ids)
        },
        "binding_summary": binding_summary,
        "rmse": rmse,
        "config": config,
    }

    manifest_path = os.path.join(run_dir, "manifest.json")
    with open(manifest_path, "w") as f:
        json.dump(manifest, f, indent=2)

    return manifest_path
