# ecochange/config/defaults.py
"""Default configuration values for the ecosystem-change pipeline"""

import os
from pathlib import Path

# Project path
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
DATA_DIR = Path(os.getenv('ECOCHANGE_DATA_DIR', PROJECT_ROOT / 'data'))
LOGS_DIR = PROJECT_ROOT / 'logs'

# Path configuration for pipeline components
PATHS = {
    'project_root': str(PROJECT_ROOT),
    'data_dir': str(DATA_DIR),
    'logs_dir': str(LOGS_DIR),
    'output_dir': str(PROJECT_ROOT / 'outputs'),
}

# Logging configuration
LOGGING = {
    'level': 'INFO',
    'file_logging': False,  # Rotating JSON log under paths.logs_dir
    'log_file': 'ecochange.log',
    'max_file_size': 50 * 1024 * 1024,  # 50MB
    'backup_count': 5,
    'show_context': True,
}

# Worker pool defaults (callers may override per call)
PROCESSING = {
    'max_workers': 1,
    'worker_ceiling': os.cpu_count() or 1,  # Upper bound on any requested pool size
}

# Grid alignment
ALIGNMENT = {
    'target_resolution': None,  # None = first layer's resolution in the common CRS
    'mask_outside_region': True,  # Cells outside the region polygon become no-data
    'all_touched': False,  # Rasterization rule for the region mask
    'snap_to_resolution': True,  # Snap region bounds outward to whole cells
}

# Stack cache
CACHE = {
    'enabled': True,
    'persist': False,  # Write integrated stacks to disk as GeoTIFF + JSON sidecar
    'cache_dir': str(PROJECT_ROOT / 'cache' / 'stacks'),
    'compress': 'lzw',
}

# Change masking
MASKING = {
    'no_change_value': None,  # Change-layer value meaning "never changed" (e.g. 0 for loss year)
    'binary_dtype': 'uint8',
    'binary_nodata': 255,
}

# Grid sampling
SAMPLING = {
    'max_doublings': 10,  # Bound on the automatic cell-size search
    'default_metric': 'condent',
    'output_nodata': -9999.0,
    'entropy_base': 2,
}

# Indicators
INDICATORS = {
    'default_metric': 'area_ha',
    'patch_connectivity': 8,  # 4 or 8 neighbour rule for patch metrics
}

# Product definitions: kind drives resampling, role drives change masking.
# pattern is the filename glob the local catalog uses under <data_dir>/<region>/
PRODUCTS = {
    'treecover2000': {'kind': 'continuous', 'role': 'ecosystem', 'pattern': '*treecover2000*.tif'},
    'lossyear': {'kind': 'categorical', 'role': 'change', 'pattern': '*lossyear*.tif'},
    'gain': {'kind': 'categorical', 'role': 'other', 'pattern': '*gain*.tif'},
    'occurrence': {'kind': 'continuous', 'role': 'ecosystem', 'pattern': '*occurrence*.tif'},
    'change': {'kind': 'continuous', 'role': 'change', 'pattern': '*change*.tif'},
    'landcover': {'kind': 'categorical', 'role': 'ecosystem', 'pattern': '*landcover*.tif'},
}

# Local source catalog
CATALOG = {
    'root': str(DATA_DIR),
    'regions_file': 'regions.yml',
}
