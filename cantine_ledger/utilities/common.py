"""
Utility functions for the canteen delivery ledger

Common functions used across import, sync and reporting scripts.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Union
import pandas as pd
import yaml

logger = logging.getLogger(__name__)


# Columns of the canteen reference CSV, in file order
CANTEEN_COLUMNS = [
    'school_name', 'provider', 'territory', 'production_mode',
    'ar', 'school_type', 'inox'
]


def get_project_root() -> Path:
    """
    Get the project root directory
    
    Returns:
        Path to project root
    """
    # Assumes this file is in cantine_ledger/utilities/
    return Path(__file__).parent.parent.parent


def get_config_dir() -> Path:
    """Directory holding the versioned reference YAML files."""
    return get_project_root() / "config"


def load_yaml_config(config_path: Union[str, Path]) -> dict:
    """
    Load a YAML configuration file
    
    Args:
        config_path: Path to YAML file
    
    Returns:
        Dictionary from YAML file
    
    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If file is not valid YAML
    """
    path = Path(config_path)
    
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")
    
    with open(path, 'r', encoding='utf-8') as f:
        try:
            config = yaml.safe_load(f)
            return config if config else {}
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Error parsing YAML: {e}")


def setup_logging(
    log_level: str = 'INFO',
    log_file: Optional[Path] = None
) -> logging.Logger:
    """
    Set up logging configuration
    
    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional file to write logs to
    
    Returns:
        Configured logger
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)
    
    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    
    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)
    
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
    
    return root_logger


def load_canteen_reference_csv(csv_path: Union[str, Path]) -> List[Dict[str, str]]:
    """
    Load the canteen reference table exported from the spreadsheet.

    The file comes either from Excel FR (';' separated) or from a plain
    CSV export (','); the separator is sniffed from the data. Rows with
    fewer than seven columns or no school name are dropped.

    Args:
        csv_path: Path to the CSV file

    Returns:
        List of dicts keyed by CANTEEN_COLUMNS
    """
    path = Path(csv_path)
    if not path.exists():
        raise FileNotFoundError(f"Canteen reference not found: {csv_path}")

    df = pd.read_csv(
        path,
        sep=None,
        engine='python',
        dtype=str,
        keep_default_na=False,
        skip_blank_lines=True,
    )

    if len(df.columns) < len(CANTEEN_COLUMNS):
        logger.warning(
            f"{path.name}: expected {len(CANTEEN_COLUMNS)} columns, found {len(df.columns)}"
        )
        return []

    df = df.iloc[:, :len(CANTEEN_COLUMNS)]
    df.columns = CANTEEN_COLUMNS
    df = df.apply(lambda col: col.str.strip().str.strip('"'))
    df = df[df['school_name'] != '']

    logger.info(f"Loaded {len(df)} canteen reference rows from {path.name}")
    return df.to_dict(orient='records')
