# Imports
import os
import re
import yaml
import logging

# Set up file logger
logger = logging.getLogger(__name__)

# Keys every index block must define before the pipeline can run it
REQUIRED_INDEX_KEYS = ["paths", "response_col", "split", "feature_selection", "random_forest",
                       "classification"]

# Define project config file loader function
def load_project_config(config_path="config/project_config.yaml"):
    """
    Loads the project configuration from a YAML file.

    Args:
        config_path (str): The path to the configuration file, relative to the project's
                           working directory (project root).

    Returns:
        dict: The loaded configuration as a dictionary.
    """
    # Join the cwd with the relative config_path.
    full_config_path = os.path.abspath(os.path.join(os.getcwd(), config_path))

    # Log error if config file not found
    if not os.path.exists(full_config_path):
        logger.error(f"Configuration file not found at: {full_config_path}")
        logger.error(f"Current working directory: {os.getcwd()}")
        raise FileNotFoundError(f"Configuration file not found at: {full_config_path}. "
                                f"Please ensure the working directory is the project root.")

    # Log when config file successfully loaded
    logger.info(f"Loading configuration from: {full_config_path}")
    with open(full_config_path, 'r') as file:
        return yaml.safe_load(file)

# Build a regex that matches exactly the keys passed, e.g. {results_root} or {raw_data_root}
def deep_format(obj, **replacements):
    if replacements:
        pattern = re.compile(r'\{(' + '|'.join(map(re.escape, replacements.keys())) + r')\}')
    else:
        pattern = None

    def _fmt(x):
        if isinstance(x, str) and pattern:
            return pattern.sub(lambda m: str(replacements[m.group(1)]), x)
        if isinstance(x, dict):
            return {k: _fmt(v) for k, v in x.items()}
        if isinstance(x, list):
            return [_fmt(v) for v in x]
        return x

    return _fmt(obj)

def expanduser_tree(obj):
    if isinstance(obj, str):
        return os.path.expanduser(obj)
    if isinstance(obj, dict):
        return {k: expanduser_tree(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [expanduser_tree(v) for v in obj]
    return obj

def resolve_config_roots(config: dict):
    """
    Substitute {raw_data_root} and {results_root} throughout the config and expand '~'.
    """
    raw_data_root = config["global"]["paths"]["raw_data_root"]
    results_root = config["global"]["paths"]["results_root"]

    config = deep_format(config, raw_data_root=raw_data_root, results_root=results_root)
    return expanduser_tree(config)

def get_index_config(config: dict, index_name: str):
    """
    Return the config block for a single modelled index, checking the required keys exist.
    """
    if index_name not in config:
        logger.error(f"No configuration block found for index '{index_name}'.")
        raise KeyError(f"Index '{index_name}' missing from project config.")

    index_config = config[index_name]
    missing = [key for key in REQUIRED_INDEX_KEYS if key not in index_config]
    if missing:
        logger.error(f"Config block for '{index_name}' is missing keys: {missing}")
        raise KeyError(f"Index '{index_name}' config missing required keys: {missing}")

    return index_config
